"""CSV parsing and line-manager resolution for BA bulk upload."""
import csv
import datetime
import io
from typing import Dict, List, Optional, Tuple

from ..constants import BA_LEVELS
from ..validation import is_valid_email

REQUIRED_COLUMNS = ('firstname', 'lastname', 'level')
OPTIONAL_COLUMNS = ('email', 'startdate', 'linemanagername')

CSV_TEMPLATE = (
    'firstName,lastName,email,level,startDate,lineManagerName\n'
    'Sarah,Johnson,sarah.johnson@company.com,Principal,2020-01-15,\n'
    'Mike,Chen,mike.chen@company.com,Lead,2021-03-10,Sarah Johnson\n'
    'James,Wilson,james.wilson@company.com,Senior,2022-02-01,Mike Chen\n'
)


def _parse_start_date(text: str) -> Optional[str]:
    """Accept only real ``YYYY-MM-DD`` dates; return the ISO string or ``None``."""
    if len(text) != 10:
        return None
    try:
        return datetime.datetime.strptime(text, '%Y-%m-%d').date().isoformat()
    except ValueError:
        return None


def full_name_key(first_name: str, last_name: str) -> str:
    return f'{first_name} {last_name}'.strip().lower()


def parse_csv(content: str) -> Dict:
    """Parse BA rows from CSV *content*.

    Returns:
        A dict with ``success``, ``data`` (one dict per accepted row, carrying
        ``row_number`` and ``line_manager_name`` alongside the BA fields),
        ``errors`` and ``warnings``.  Rejected rows are reported as
        ``"Row N: ..."`` where N counts the header as row 1.
    """
    errors: List[str] = []
    warnings: List[str] = []
    data: List[Dict] = []

    rows = [r for r in csv.reader(io.StringIO((content or '').strip()))]
    if len(rows) < 2:
        return {
            'success': False,
            'data': [],
            'errors': ['CSV file must contain a header row and at least one data row'],
            'warnings': [],
        }

    header = [col.strip().lower() for col in rows[0]]
    missing = [col for col in REQUIRED_COLUMNS if col not in header]
    if missing:
        return {
            'success': False,
            'data': [],
            'errors': [f"Missing required columns: {', '.join(missing)}"],
            'warnings': [],
        }

    unknown = [col for col in header if col not in REQUIRED_COLUMNS + OPTIONAL_COLUMNS]
    if unknown:
        warnings.append(f"Ignoring unknown columns: {', '.join(unknown)}")

    for row_number, values in enumerate(rows[1:], start=2):
        if not values:
            continue
        if len(values) != len(header):
            errors.append(f'Row {row_number}: Expected {len(header)} columns, got {len(values)}')
            continue

        row = {col: (values[i] or '').strip() for i, col in enumerate(header)}

        if not row['firstname']:
            errors.append(f'Row {row_number}: firstName is required')
            continue
        if not row['lastname']:
            errors.append(f'Row {row_number}: lastName is required')
            continue
        if not row['level']:
            errors.append(f'Row {row_number}: level is required')
            continue
        if row['level'] not in BA_LEVELS:
            errors.append(f'Row {row_number}: Invalid level "{row["level"]}". '
                          f'Must be one of: {", ".join(BA_LEVELS)}')
            continue

        email = row.get('email', '')
        if email and not is_valid_email(email):
            errors.append(f'Row {row_number}: Invalid email format "{email}"')
            continue

        start_date = None
        if row.get('startdate'):
            start_date = _parse_start_date(row['startdate'])
            if start_date is None:
                errors.append(f'Row {row_number}: Invalid date format "{row["startdate"]}". '
                              'Use YYYY-MM-DD format')
                continue

        data.append({
            'row_number': row_number,
            'first_name': row['firstname'],
            'last_name': row['lastname'],
            'email': email or None,
            'level': row['level'],
            'start_date': start_date,
            'line_manager_name': row.get('linemanagername') or None,
        })

    return {
        'success': not errors,
        'data': data,
        'errors': errors,
        'warnings': warnings,
    }


def resolve_line_managers(rows: List[Dict],
                          existing: List[Dict]) -> Tuple[List[Dict], List[str]]:
    """Resolve each row's ``line_manager_name`` to a manager reference.

    Names are matched case-insensitively against *existing* BAs first (pass
    only active ones), giving a ``line_manager_id``.  Failing that, a BA in
    the same batch with that name becomes a deferred reference
    (``deferred_manager_index``, an index into *rows*) to be assigned once
    the batch has been created.  Unknown names are reported and the row is
    kept without a manager.
    """
    errors: List[str] = []
    resolved: List[Dict] = []

    existing_by_name = {
        full_name_key(ba.get('first_name', ''), ba.get('last_name', '')): ba['id']
        for ba in existing
    }
    batch_by_name: Dict[str, int] = {}
    for index, row in enumerate(rows):
        batch_by_name.setdefault(full_name_key(row['first_name'], row['last_name']), index)

    for index, row in enumerate(rows):
        entry = dict(row)
        entry['line_manager_id'] = None
        entry['deferred_manager_index'] = None
        manager_name = row.get('line_manager_name')
        if manager_name:
            key = manager_name.strip().lower()
            if key in existing_by_name:
                entry['line_manager_id'] = existing_by_name[key]
            elif key in batch_by_name and batch_by_name[key] != index:
                entry['deferred_manager_index'] = batch_by_name[key]
            else:
                row_number = row.get('row_number', index + 2)
                errors.append(f'Row {row_number}: Line manager "{manager_name}" not found')
        resolved.append(entry)

    return resolved, errors
