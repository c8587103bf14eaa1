#!/usr/bin/env python3
"""
Talking Talent - quarterly performance-review tracker.
Keeps Business Analyst records in a reporting hierarchy, runs quarterly review
rounds and captures one review per BA per round, persisted as JSON files.
"""

import argparse
import datetime
import json
import logging
import os
import sys
import tempfile
from typing import Dict, List, Optional

from colorama import init, Fore, Style
from dotenv import load_dotenv

from talent.constants import BA_LEVELS
from talent.dates import format_date, format_datetime
from talent.errors import TalentError, handle_error
from talent.repositories import AnalystRepository, ReviewRepository, RoundRepository
from talent.sample_data import create_sample_data
from talent.services import (
    AnalystService, CSV_TEMPLATE, ExportService, ReviewService, RoundService,
)

# Initialize colorama for cross-platform colored terminal output
init(autoreset=True)

# ---------------------------------------------------------------------------
# Logging setup
# ---------------------------------------------------------------------------

def setup_logging(level: str = 'WARNING') -> logging.Logger:
    """Configure the root ``talent`` logger.

    Args:
        level: Log level string (DEBUG, INFO, WARNING, ERROR, CRITICAL).
               Defaults to WARNING so normal use is quiet.

    Returns:
        Configured logger instance.
    """
    numeric = getattr(logging, str(level).upper(), logging.WARNING)
    logger = logging.getLogger('talent')
    if not logger.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter('[%(levelname)s] %(name)s: %(message)s'))
        logger.addHandler(handler)
    logger.setLevel(numeric)
    return logger


logger = setup_logging()


def _atomic_write_text(path: str, text: str) -> None:
    """Write *text* to *path* atomically (write-then-rename).

    Raises:
        OSError: If the write or rename fails.
    """
    dir_name = os.path.dirname(os.path.abspath(path))
    fd, tmp_path = tempfile.mkstemp(dir=dir_name, suffix='.tmp')
    try:
        with os.fdopen(fd, 'w', encoding='utf-8') as f:
            f.write(text)
        os.replace(tmp_path, path)
    except Exception:
        try:
            os.unlink(tmp_path)
        except OSError:
            pass
        raise


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------

DEFAULT_CONFIG: Dict = {
    'data_dir': '.talking_talent',
    'log_level': 'WARNING',
    'created_by': 'system',
    'host': '127.0.0.1',
    'port': 5000,
}

# Environment variable -> config key
_ENV_OVERRIDES = {
    'TALENT_DATA_DIR': 'data_dir',
    'TALENT_LOG_LEVEL': 'log_level',
    'TALENT_CREATED_BY': 'created_by',
    'TALENT_HOST': 'host',
    'TALENT_PORT': 'port',
}


def load_config(config_path: Optional[str] = None) -> Dict:
    """Load configuration from an optional JSON file with environment overrides.

    A missing file means "use the defaults"; a file that exists but cannot be
    parsed is an error.  Environment variables take precedence over file
    values:

    - TALENT_DATA_DIR overrides data_dir
    - TALENT_LOG_LEVEL overrides log_level
    - TALENT_CREATED_BY overrides created_by
    - TALENT_HOST / TALENT_PORT override host / port

    Raises:
        TalentError: If the config file is unreadable or not a JSON object.
    """
    config = dict(DEFAULT_CONFIG)
    if config_path and os.path.exists(config_path):
        try:
            with open(config_path, 'r', encoding='utf-8') as f:
                file_config = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            raise TalentError(f"Error parsing config file '{config_path}': {e}",
                              code='CONFIG_ERROR') from e
        if not isinstance(file_config, dict):
            raise TalentError(f"Config file '{config_path}' must contain a JSON object",
                              code='CONFIG_ERROR')
        config.update(file_config)

    for env_name, key in _ENV_OVERRIDES.items():
        if os.getenv(env_name):
            config[key] = os.getenv(env_name)

    try:
        config['port'] = int(config['port'])
    except (TypeError, ValueError):
        raise TalentError(f"Invalid port: {config['port']!r}", code='CONFIG_ERROR')
    return config


# ---------------------------------------------------------------------------
# Integration point
# ---------------------------------------------------------------------------

class TalentTracker:
    """Wires repositories and services together for one data directory."""

    DEFAULT_CONFIG_FILE = 'config.json'

    def __init__(self, config_path: Optional[str] = DEFAULT_CONFIG_FILE,
                 data_dir: Optional[str] = None):
        self._log = logging.getLogger('talent.tracker')
        self.config = load_config(config_path)
        if data_dir:
            self.config['data_dir'] = data_dir

        # Re-apply log level from config (allows "log_level": "DEBUG" in config.json)
        setup_logging(self.config.get('log_level', 'WARNING'))

        self.data_dir: str = self.config['data_dir']
        self.analyst_repository = AnalystRepository(self.data_dir)
        self.round_repository = RoundRepository(self.data_dir)
        self.review_repository = ReviewRepository(self.data_dir)

        self.analyst_service = AnalystService(self.analyst_repository)
        self.round_service = RoundService(
            self.round_repository, self.analyst_repository, self.review_repository,
            created_by=self.config.get('created_by', 'system'),
        )
        self.review_service = ReviewService(
            self.review_repository, self.analyst_repository, self.round_repository,
        )
        self.export_service = ExportService(
            self.analyst_repository, self.round_repository, self.review_repository,
        )
        self._log.debug("Tracker ready on %s", os.path.abspath(self.data_dir))

    def reload(self) -> None:
        """Re-read every repository from disk."""
        for repo in (self.analyst_repository, self.round_repository, self.review_repository):
            repo.reload()

    def create_sample_data(self) -> Dict:
        return create_sample_data(self.analyst_service, self.round_service)

    def get_dashboard(self, today: Optional[datetime.date] = None) -> Dict:
        """Overview used by the dashboard page and ``--dashboard``.

        Returns:
            ``{"active_bas", "active_rounds": [{"round", "summary"}],
            "upcoming_deadlines", "overdue_rounds"}``.
        """
        active_rounds = self.round_service.get_active()
        return {
            'active_bas': len(self.analyst_service.get_active()),
            'active_rounds': [
                {'round': rnd, 'summary': self.round_service.get_round_summary(rnd['id'])}
                for rnd in active_rounds
            ],
            'upcoming_deadlines': self.round_service.get_upcoming_deadlines(today),
            'overdue_rounds': self.round_service.get_overdue(today),
        }

    def get_historical_trends(self, level: Optional[str] = None,
                              trend: Optional[str] = None) -> List[Dict]:
        """Trends for every active BA, optionally filtered by level or trend."""
        results = []
        for ba in self.analyst_service.get_active():
            if level and ba.get('level') != level:
                continue
            item = self.review_service.get_historical_trend(ba['id'])
            if trend and item['trend'] != trend:
                continue
            results.append(item)
        return results


# ---------------------------------------------------------------------------
# Terminal output
# ---------------------------------------------------------------------------

def _name(ba: Dict) -> str:
    return f"{ba.get('first_name', '')} {ba.get('last_name', '')}".strip()


def print_org_chart(nodes: List[Dict]) -> None:
    if not nodes:
        print(f"{Fore.YELLOW}No active business analysts.")
        return

    def walk(node: Dict) -> None:
        ba = node['ba']
        indent = '  ' * node['depth']
        print(f"{indent}{Fore.CYAN}{_name(ba)} {Fore.WHITE}({ba.get('level')}) "
              f"{Style.DIM}{ba['id']}")
        for child in node['children']:
            walk(child)

    for root in nodes:
        walk(root)


def print_analysts(analysts: List[Dict], service: AnalystService) -> None:
    if not analysts:
        print(f"{Fore.YELLOW}No business analysts found.")
        return
    for ba in analysts:
        manager = service.full_name(ba.get('line_manager_id')) or '-'
        print(f"{Fore.CYAN}{ba['id']}  {Fore.WHITE}{_name(ba):<25} "
              f"{Fore.YELLOW}{ba.get('level', ''):<13} {Fore.WHITE}manager: {manager}  "
              f"{ba.get('department') or ''}")
    print(f"\n{Fore.GREEN}{len(analysts)} business analyst(s)")


def print_rounds(rounds: List[Dict]) -> None:
    if not rounds:
        print(f"{Fore.YELLOW}No talent rounds yet.")
        return
    colours = {'Draft': Fore.WHITE, 'Active': Fore.GREEN, 'Completed': Fore.BLUE}
    for rnd in sorted(rounds, key=lambda r: (r.get('year', 0), r.get('quarter', ''))):
        colour = colours.get(rnd.get('status'), Fore.WHITE)
        print(f"{Fore.CYAN}{rnd['id']}  {Fore.WHITE}{rnd.get('name', ''):<30} "
              f"{colour}{rnd.get('status', ''):<10} {Fore.WHITE}due {format_date(rnd.get('deadline'))}")


def print_summary(summary: Dict) -> None:
    pct = summary['completion_percentage']
    colour = Fore.GREEN if pct >= 100 else Fore.YELLOW if pct >= 50 else Fore.RED
    print(f"{Fore.YELLOW}Round: {Fore.WHITE}{summary['round_id']}")
    print(f"{Fore.YELLOW}Completion: {colour}{pct}% "
          f"{Fore.WHITE}({summary['completed_reviews']}/{summary['total_bas']}, "
          f"{summary['pending_reviews']} pending)")
    for level in BA_LEVELS:
        bucket = summary['reviews_by_level'].get(level, {'total': 0, 'completed': 0})
        print(f"  {Fore.CYAN}{level:<13} {Fore.WHITE}{bucket['completed']}/{bucket['total']}")


def print_deadlines(deadlines: List[Dict], overdue: List[Dict]) -> None:
    if not deadlines and not overdue:
        print(f"{Fore.YELLOW}No active rounds.")
        return
    for item in overdue:
        print(f"{Fore.RED}{item['round_name']}: overdue by {-item['days_remaining']} day(s)")
    for item in deadlines:
        days = item['days_remaining']
        colour = Fore.RED if days <= 3 else Fore.YELLOW if days <= 7 else Fore.GREEN
        print(f"{colour}{item['round_name']}: {days} day(s) left "
              f"{Fore.WHITE}(due {format_date(item['deadline'])})")


def print_trend(trend: Dict, name: str) -> None:
    print(f"{Fore.CYAN}{Style.BRIGHT}{name or trend['ba_id']}: {trend['trend']}")
    if not trend['reviews']:
        print(f"{Fore.YELLOW}No completed reviews yet.")
    for entry in trend['reviews']:
        flags = [k for k, v in entry['concerns'].items() if v]
        print(f"  {Fore.WHITE}{format_datetime(entry['date'])}  {entry['round_name']:<30} "
              f"{Fore.YELLOW}{entry['promotion_readiness']:<11} "
              f"{Fore.WHITE}actions: {entry['action_count']}  "
              f"concerns: {', '.join(flags) or 'none'}")


def print_dashboard(dashboard: Dict) -> None:
    print(f"{Fore.GREEN}{'=' * 60}")
    print(f"{Fore.CYAN}{Style.BRIGHT}Talking Talent dashboard")
    print(f"{Fore.GREEN}{'=' * 60}")
    print(f"{Fore.YELLOW}Active business analysts: {Fore.WHITE}{dashboard['active_bas']}")
    print(f"{Fore.YELLOW}Active rounds: {Fore.WHITE}{len(dashboard['active_rounds'])}")
    for item in dashboard['active_rounds']:
        summary = item['summary']
        print(f"  {Fore.CYAN}{item['round']['name']}: {Fore.WHITE}"
              f"{summary['completion_percentage']}% complete "
              f"({summary['completed_reviews']}/{summary['total_bas']})")
    print()
    print_deadlines(dashboard['upcoming_deadlines'], dashboard['overdue_rounds'])


# ---------------------------------------------------------------------------
# Command line
# ---------------------------------------------------------------------------

def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description='Talking Talent - quarterly performance-review tracker',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python3 talking_talent.py                      # Show the dashboard
  python3 talking_talent.py --org-chart          # Print the reporting tree
  python3 talking_talent.py --list --level Lead  # List Lead BAs
  python3 talking_talent.py --summary ROUND_ID   # Round completion summary
  python3 talking_talent.py --export backup.json # Export everything
        """
    )
    parser.add_argument('--config', '-c', default=TalentTracker.DEFAULT_CONFIG_FILE,
                        help='Path to config file (default: config.json, optional)')
    parser.add_argument('--data-dir', help='Directory holding the JSON data files')
    parser.add_argument('--log-level', help='DEBUG, INFO, WARNING, ERROR or CRITICAL')
    parser.add_argument('--dashboard', '-d', action='store_true',
                        help='Show the dashboard (default action)')
    parser.add_argument('--org-chart', '-o', action='store_true',
                        help='Print the organisation chart')
    parser.add_argument('--list', '-l', action='store_true',
                        help='List active business analysts')
    parser.add_argument('--level', choices=BA_LEVELS, help='Filter --list by level')
    parser.add_argument('--search', metavar='TERM',
                        help='Filter --list by name, email or department')
    parser.add_argument('--reports', metavar='BA_ID',
                        help='List the direct reports of a business analyst')
    parser.add_argument('--rounds', '-r', action='store_true', help='List talent rounds')
    parser.add_argument('--summary', metavar='ROUND_ID', help='Show a round summary')
    parser.add_argument('--deadlines', action='store_true',
                        help='Show upcoming and overdue round deadlines')
    parser.add_argument('--activate', metavar='ROUND_ID', help='Activate a draft round')
    parser.add_argument('--complete', metavar='ROUND_ID', help='Complete an active round')
    parser.add_argument('--trend', metavar='BA_ID',
                        help='Show the review history trend for a business analyst')
    parser.add_argument('--export', metavar='FILE', help='Export all data to a JSON file')
    parser.add_argument('--import', dest='import_file', metavar='FILE',
                        help='Import data from a JSON export (replaces stored arrays)')
    parser.add_argument('--import-csv', metavar='FILE',
                        help='Bulk-create business analysts from a CSV file')
    parser.add_argument('--csv-template', action='store_true',
                        help='Print the CSV bulk-upload template')
    parser.add_argument('--sample-data', action='store_true',
                        help='Create a sample org chart and draft round')
    parser.add_argument('--clear-data', action='store_true',
                        help='Delete all stored data (requires --yes)')
    parser.add_argument('--yes', action='store_true', help='Confirm destructive actions')
    return parser


def _report_list(title: str, items: List[str], colour: str) -> None:
    if items:
        print(f"{colour}{title}:")
        for item in items:
            print(f"{colour}  - {item}")


def run(args: argparse.Namespace) -> int:
    """Execute the action selected by *args*.  Returns the process exit code."""
    if args.csv_template:
        print(CSV_TEMPLATE, end='')
        return 0

    tracker = TalentTracker(config_path=args.config, data_dir=args.data_dir)
    if args.log_level:
        setup_logging(args.log_level)

    if args.sample_data:
        result = tracker.create_sample_data()
        colour = Fore.GREEN if result['success'] else Fore.RED
        print(f"{colour}{result['message']}")
        return 0 if result['success'] else 1

    if args.clear_data:
        if not args.yes:
            print(f"{Fore.RED}Refusing to clear data without --yes")
            return 1
        tracker.export_service.clear_all()
        print(f"{Fore.GREEN}All data cleared.")
        return 0

    if args.export:
        result = tracker.export_service.export_all()
        if not result['success']:
            print(f"{Fore.RED}Export failed: {result['error']}")
            return 1
        _atomic_write_text(args.export, result['data'])
        print(f"{Fore.GREEN}Data exported to {args.export}")
        return 0

    if args.import_file:
        with open(args.import_file, 'r', encoding='utf-8') as f:
            result = tracker.export_service.import_data(f.read())
        if result['success']:
            print(f"{Fore.GREEN}Imported {result['imported']} record(s) from {args.import_file}")
        _report_list('Errors', result['errors'], Fore.RED)
        return 0 if result['success'] else 1

    if args.import_csv:
        with open(args.import_csv, 'r', encoding='utf-8') as f:
            result = tracker.analyst_service.bulk_create(f.read())
        print(f"{Fore.GREEN}Created {result['created']} business analyst(s)")
        _report_list('Errors', result['errors'], Fore.RED)
        _report_list('Warnings', result['warnings'], Fore.YELLOW)
        return 0 if result['success'] else 1

    if args.activate:
        if tracker.round_service.activate(args.activate) is None:
            print(f"{Fore.RED}Round not found: {args.activate}")
            return 1
        print(f"{Fore.GREEN}Round {args.activate} activated.")
        return 0

    if args.complete:
        if tracker.round_service.complete(args.complete) is None:
            print(f"{Fore.RED}Round not found: {args.complete}")
            return 1
        print(f"{Fore.GREEN}Round {args.complete} completed.")
        return 0

    if args.org_chart:
        print_org_chart(tracker.analyst_service.get_org_chart())
        return 0

    if args.list:
        print_analysts(tracker.analyst_service.search(args.search or '', args.level),
                       tracker.analyst_service)
        return 0

    if args.reports:
        print_analysts(tracker.analyst_service.get_direct_reports(args.reports),
                       tracker.analyst_service)
        return 0

    if args.rounds:
        print_rounds(tracker.round_service.get_all())
        return 0

    if args.summary:
        print_summary(tracker.round_service.get_round_summary(args.summary))
        return 0

    if args.deadlines:
        print_deadlines(tracker.round_service.get_upcoming_deadlines(),
                        tracker.round_service.get_overdue())
        return 0

    if args.trend:
        print_trend(tracker.review_service.get_historical_trend(args.trend),
                    tracker.analyst_service.full_name(args.trend))
        return 0

    print_dashboard(tracker.get_dashboard())
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point"""
    load_dotenv()
    args = build_parser().parse_args(argv)
    try:
        return run(args)
    except TalentError as e:
        print(f"{Fore.RED}{handle_error(e)}")
        return 1
    except OSError as e:
        print(f"{Fore.RED}File error: {e}")
        return 1
    except UnicodeDecodeError as e:
        print(f"{Fore.RED}File error: not UTF-8 text ({e.reason} at byte {e.start})")
        return 1
    except KeyboardInterrupt:
        print(f"\n{Fore.YELLOW}Interrupted by user. Goodbye!")
        return 130


if __name__ == "__main__":
    sys.exit(main())
