#!/usr/bin/env python3
"""
Talking Talent web API.
JSON endpoints over the tracker services for analysts, the org chart,
talent rounds, reviews, trends and data export/import.
"""
import logging
import logging.handlers
import argparse
import json
import os
import threading
from functools import wraps
from typing import Optional

from dotenv import load_dotenv
from flask import Flask, Response, jsonify, redirect, request

import talking_talent
from talent.constants import BA_LEVELS, TRENDS
from talent.errors import (
    ConflictError,
    NotFoundError,
    StateError,
    StorageError,
    TalentError,
    ValidationError,
    handle_error,
)
from talent.services import CSV_TEMPLATE

load_dotenv()

log_level = os.getenv('TALENT_LOG_LEVEL', 'INFO')
talent_logger = talking_talent.setup_logging(log_level)
gui_logger = logging.getLogger('talent.gui')

app = Flask(__name__)

# Global tracker instance, created on first use
tracker: Optional[talking_talent.TalentTracker] = None
tracker_lock = threading.RLock()

_STATUS_CODES = (
    (ValidationError, 400),
    (NotFoundError, 404),
    (ConflictError, 409),
    (StateError, 409),
    (StorageError, 507),
)


def get_tracker() -> talking_talent.TalentTracker:
    """Return the shared tracker, creating it from config/env on first use."""
    global tracker
    with tracker_lock:
        if tracker is None:
            tracker = talking_talent.TalentTracker(
                config_path=os.getenv('TALENT_CONFIG', talking_talent.TalentTracker.DEFAULT_CONFIG_FILE))
        return tracker


def with_tracker(f):
    """Pass the shared tracker to the view and serialise access to it."""
    @wraps(f)
    def decorated_function(*args, **kwargs):
        t = get_tracker()
        with tracker_lock:
            return f(t, *args, **kwargs)
    return decorated_function


def _json_body() -> dict:
    data = request.get_json(silent=True)
    return data if isinstance(data, dict) else {}


@app.errorhandler(TalentError)
def handle_talent_error(error: TalentError):
    status = 500
    for exc_type, code in _STATUS_CODES:
        if isinstance(error, exc_type):
            status = code
            break
    payload = {'error': handle_error(error), 'code': error.code}
    if isinstance(error, ValidationError):
        payload['errors'] = error.errors
    return jsonify(payload), status


# ---------------------------------------------------------------------------
# Status & dashboard
# ---------------------------------------------------------------------------

@app.route('/')
def index():
    return redirect('/api/docs')


@app.route('/api/status')
@with_tracker
def api_status(t):
    """Return basic service status and record counts."""
    return jsonify({
        'status': 'ok',
        'data_dir': os.path.abspath(t.data_dir),
        'counts': t.export_service.get_data_counts(),
    })


@app.route('/api/dashboard')
@with_tracker
def api_dashboard(t):
    """Active BA count, active round summaries, deadlines and overdue rounds."""
    return jsonify(t.get_dashboard())


# ---------------------------------------------------------------------------
# Business analysts
# ---------------------------------------------------------------------------

@app.route('/api/analysts', methods=['GET'])
@with_tracker
def api_list_analysts(t):
    """List BAs.

    Query params: ``level``, ``search``, ``include_inactive=1``.
    """
    level = request.args.get('level') or None
    if level and level not in BA_LEVELS:
        return jsonify({'error': f"level must be one of: {', '.join(BA_LEVELS)}"}), 400
    if request.args.get('include_inactive') in ('1', 'true', 'yes'):
        analysts = t.analyst_service.get_all()
        if level:
            analysts = [ba for ba in analysts if ba.get('level') == level]
    else:
        analysts = t.analyst_service.search(request.args.get('search', ''), level)
    return jsonify({'analysts': analysts, 'count': len(analysts)})


@app.route('/api/analysts', methods=['POST'])
@with_tracker
def api_create_analyst(t):
    ba = t.analyst_service.create(_json_body())
    return jsonify(ba), 201


@app.route('/api/analysts/org-chart', methods=['GET'])
@with_tracker
def api_org_chart(t):
    return jsonify({'org_chart': t.analyst_service.get_org_chart()})


@app.route('/api/analysts/bulk', methods=['POST'])
@with_tracker
def api_bulk_create_analysts(t):
    """Create BAs from CSV, sent as a multipart ``file`` or a ``text/csv`` body."""
    if request.content_type and 'multipart' in request.content_type:
        f = request.files.get('file')
        if not f:
            return jsonify({'error': 'No file uploaded'}), 400
        try:
            content = f.read().decode('utf-8')
        except UnicodeDecodeError:
            return jsonify({'error': 'CSV file must be UTF-8 encoded'}), 400
    else:
        content = request.get_data(as_text=True)
    if not content.strip():
        return jsonify({'error': 'CSV content is required'}), 400

    result = t.analyst_service.bulk_create(content)
    return jsonify(result), (200 if result['success'] else 400)


@app.route('/api/analysts/bulk/template', methods=['GET'])
def api_bulk_template():
    return Response(
        CSV_TEMPLATE,
        mimetype='text/csv',
        headers={'Content-Disposition': 'attachment; filename="ba_upload_template.csv"'},
    )


@app.route('/api/analysts/<ba_id>', methods=['GET'])
@with_tracker
def api_get_analyst(t, ba_id: str):
    ba = t.analyst_service.get_by_id(ba_id)
    if ba is None:
        return jsonify({'error': 'Business analyst not found'}), 404
    return jsonify(ba)


@app.route('/api/analysts/<ba_id>', methods=['PUT', 'PATCH'])
@with_tracker
def api_update_analyst(t, ba_id: str):
    ba = t.analyst_service.update(ba_id, _json_body())
    if ba is None:
        return jsonify({'error': 'Business analyst not found'}), 404
    return jsonify(ba)


@app.route('/api/analysts/<ba_id>', methods=['DELETE'])
@with_tracker
def api_deactivate_analyst(t, ba_id: str):
    """Deactivate (soft-delete) a BA."""
    if not t.analyst_service.deactivate(ba_id):
        return jsonify({'error': 'Business analyst not found'}), 404
    return jsonify({'success': True})


@app.route('/api/analysts/<ba_id>/reports', methods=['GET'])
@with_tracker
def api_direct_reports(t, ba_id: str):
    reports = t.analyst_service.get_direct_reports(ba_id)
    return jsonify({'reports': reports, 'count': len(reports)})


@app.route('/api/analysts/<ba_id>/trend', methods=['GET'])
@with_tracker
def api_analyst_trend(t, ba_id: str):
    if t.analyst_service.get_by_id(ba_id) is None:
        return jsonify({'error': 'Business analyst not found'}), 404
    return jsonify(t.review_service.get_historical_trend(ba_id))


@app.route('/api/analysts/<ba_id>/reviews', methods=['GET'])
@with_tracker
def api_analyst_reviews(t, ba_id: str):
    return jsonify({'reviews': t.review_service.get_by_analyst(ba_id)})


# ---------------------------------------------------------------------------
# Trends
# ---------------------------------------------------------------------------

@app.route('/api/trends', methods=['GET'])
@with_tracker
def api_trends(t):
    """Historical trends for active BAs.

    Query params: ``level``, ``trend`` (Improving/Stable/Declining/New).
    """
    trend = request.args.get('trend') or None
    if trend and trend not in TRENDS:
        return jsonify({'error': f"trend must be one of: {', '.join(TRENDS)}"}), 400
    trends = t.get_historical_trends(level=request.args.get('level') or None, trend=trend)
    return jsonify({'trends': trends,
                    'summary': t.review_service.get_trend_summary(trends)})


# ---------------------------------------------------------------------------
# Talent rounds
# ---------------------------------------------------------------------------

@app.route('/api/rounds', methods=['GET'])
@with_tracker
def api_list_rounds(t):
    """List rounds, optionally ``?status=Draft|Active|Completed``."""
    rounds = t.round_service.get_all()
    status = request.args.get('status')
    if status:
        rounds = [r for r in rounds if r.get('status') == status]
    return jsonify({'rounds': rounds})


@app.route('/api/rounds', methods=['POST'])
@with_tracker
def api_create_round(t):
    return jsonify(t.round_service.create(_json_body())), 201


@app.route('/api/rounds/active', methods=['GET'])
@with_tracker
def api_active_rounds(t):
    return jsonify({'rounds': t.round_service.get_active()})


@app.route('/api/rounds/deadlines', methods=['GET'])
@with_tracker
def api_round_deadlines(t):
    return jsonify({
        'upcoming': t.round_service.get_upcoming_deadlines(),
        'overdue': t.round_service.get_overdue(),
    })


@app.route('/api/rounds/<round_id>', methods=['GET'])
@with_tracker
def api_get_round(t, round_id: str):
    rnd = t.round_service.get_by_id(round_id)
    if rnd is None:
        return jsonify({'error': 'Round not found'}), 404
    return jsonify(rnd)


@app.route('/api/rounds/<round_id>', methods=['PUT', 'PATCH'])
@with_tracker
def api_update_round(t, round_id: str):
    rnd = t.round_service.update(round_id, _json_body())
    if rnd is None:
        return jsonify({'error': 'Round not found'}), 404
    return jsonify(rnd)


@app.route('/api/rounds/<round_id>', methods=['DELETE'])
@with_tracker
def api_delete_round(t, round_id: str):
    if not t.round_service.delete(round_id):
        return jsonify({'error': 'Round not found'}), 404
    return jsonify({'success': True})


@app.route('/api/rounds/<round_id>/activate', methods=['POST'])
@with_tracker
def api_activate_round(t, round_id: str):
    rnd = t.round_service.activate(round_id)
    if rnd is None:
        return jsonify({'error': 'Round not found'}), 404
    return jsonify(rnd)


@app.route('/api/rounds/<round_id>/complete', methods=['POST'])
@with_tracker
def api_complete_round(t, round_id: str):
    rnd = t.round_service.complete(round_id)
    if rnd is None:
        return jsonify({'error': 'Round not found'}), 404
    return jsonify(rnd)


@app.route('/api/rounds/<round_id>/summary', methods=['GET'])
@with_tracker
def api_round_summary(t, round_id: str):
    return jsonify(t.round_service.get_round_summary(round_id))


@app.route('/api/rounds/<round_id>/session', methods=['GET'])
@with_tracker
def api_round_session(t, round_id: str):
    """Everything a live review session needs for one round.

    Returns the active BAs in org-chart order, each with the review for this
    round (if any) and their most recent complete review from earlier rounds.
    """
    rnd = t.round_service.get_by_id(round_id)
    if rnd is None:
        return jsonify({'error': 'Round not found'}), 404

    ordered = []

    def walk(node):
        ordered.append(node['ba'])
        for child in node['children']:
            walk(child)

    for root in t.analyst_service.get_org_chart():
        walk(root)

    entries = [{
        'ba': ba,
        'review': t.review_service.get_by_analyst_and_round(ba['id'], round_id),
        'previous_review': t.review_service.get_previous_review(ba['id'], round_id),
    } for ba in ordered]
    return jsonify({
        'round': rnd,
        'entries': entries,
        'summary': t.round_service.get_round_summary(round_id),
    })


# ---------------------------------------------------------------------------
# Reviews
# ---------------------------------------------------------------------------

@app.route('/api/reviews', methods=['GET'])
@with_tracker
def api_list_reviews(t):
    """List reviews, filtered by ``round_id`` and/or ``analyst_id``."""
    round_id = request.args.get('round_id')
    analyst_id = request.args.get('analyst_id')
    if round_id and analyst_id:
        review = t.review_service.get_by_analyst_and_round(analyst_id, round_id)
        reviews = [review] if review else []
    elif round_id:
        reviews = t.review_service.get_by_round(round_id)
    elif analyst_id:
        reviews = t.review_service.get_by_analyst(analyst_id)
    else:
        reviews = t.review_service.get_all()
    return jsonify({'reviews': reviews})


@app.route('/api/reviews', methods=['POST'])
@with_tracker
def api_create_review(t):
    return jsonify(t.review_service.create(_json_body())), 201


@app.route('/api/reviews/<review_id>', methods=['GET'])
@with_tracker
def api_get_review(t, review_id: str):
    review = t.review_service.get_by_id(review_id)
    if review is None:
        return jsonify({'error': 'No review found'}), 404
    return jsonify(review)


@app.route('/api/reviews/<review_id>', methods=['PUT', 'PATCH'])
@with_tracker
def api_update_review(t, review_id: str):
    review = t.review_service.update(review_id, _json_body())
    if review is None:
        return jsonify({'error': 'No review found'}), 404
    return jsonify(review)


@app.route('/api/reviews/<review_id>', methods=['DELETE'])
@with_tracker
def api_delete_review(t, review_id: str):
    if not t.review_service.delete(review_id):
        return jsonify({'error': 'No review found'}), 404
    return jsonify({'success': True})


# ---------------------------------------------------------------------------
# Data management
# ---------------------------------------------------------------------------

@app.route('/api/export')
@with_tracker
def api_export(t):
    """Download every record as one JSON attachment."""
    result = t.export_service.export_all()
    if not result['success']:
        return jsonify({'error': result['error'] or 'Export failed'}), 500
    return Response(
        result['data'],
        mimetype='application/json',
        headers={'Content-Disposition': f'attachment; filename="{result["filename"]}"'},
    )


@app.route('/api/import', methods=['POST'])
@with_tracker
def api_import(t):
    """Restore data from an export, sent as JSON or a multipart ``file``.

    Arrays present in the document replace the stored ones.
    """
    if request.content_type and 'multipart' in request.content_type:
        f = request.files.get('file')
        if not f:
            return jsonify({'error': 'No file uploaded'}), 400
        try:
            payload = f.read().decode('utf-8')
        except UnicodeDecodeError:
            return jsonify({'error': 'Import file must be UTF-8 encoded'}), 400
    else:
        payload = request.get_data(as_text=True)

    result = t.export_service.import_data(payload)
    if result['success']:
        gui_logger.info("Imported %d record(s)", result['imported'])
    return jsonify(result), (200 if result['success'] else 400)


@app.route('/api/data', methods=['DELETE'])
@with_tracker
def api_clear_data(t):
    """Delete all stored data.  Requires ``?confirm=yes``."""
    if request.args.get('confirm') != 'yes':
        return jsonify({'error': 'Pass confirm=yes to clear all data'}), 400
    t.export_service.clear_all()
    return jsonify({'success': True})


@app.route('/api/data/stats', methods=['GET'])
@with_tracker
def api_data_stats(t):
    return jsonify({
        'counts': t.export_service.get_data_counts(),
        'storage_bytes': t.export_service.get_storage_size(),
    })


@app.route('/api/sample-data', methods=['POST'])
@with_tracker
def api_sample_data(t):
    result = t.create_sample_data()
    return jsonify(result), (201 if result['success'] else 409)


# ---------------------------------------------------------------------------
# API documentation
# ---------------------------------------------------------------------------

@app.route('/api/openapi.json')
def api_openapi_spec():
    """Serve the OpenAPI 3.0 specification as JSON."""
    from openapi_spec import build_spec
    server_url = request.url_root.rstrip('/')
    return jsonify(build_spec(server_url=server_url))


@app.route('/api/docs')
def api_swagger_ui():
    """Serve an interactive Swagger UI for the Talking Talent REST API."""
    openapi_url = '/api/openapi.json'
    html = f"""<!DOCTYPE html>
<html lang="en">
<head>
  <meta charset="UTF-8">
  <meta name="viewport" content="width=device-width, initial-scale=1.0">
  <title>Talking Talent API Documentation</title>
  <link rel="stylesheet"
        href="https://unpkg.com/swagger-ui-dist@5/swagger-ui.css">
</head>
<body>
  <div id="swagger-ui"></div>
  <script src="https://unpkg.com/swagger-ui-dist@5/swagger-ui-bundle.js"></script>
  <script>
    SwaggerUIBundle({{ url: {json.dumps(openapi_url)}, dom_id: '#swagger-ui' }});
  </script>
</body>
</html>"""
    return Response(html, mimetype='text/html')


def _add_file_logging(level: str) -> None:
    try:
        os.makedirs('logs', exist_ok=True)
        fh = logging.handlers.RotatingFileHandler(
            'logs/talking_talent_gui.log', maxBytes=1_000_000, backupCount=3)
        fh.setFormatter(logging.Formatter('[%(asctime)s] %(levelname)s %(name)s: %(message)s'))
        fh.setLevel(getattr(logging, level.upper(), logging.INFO))
        talent_logger.addHandler(fh)
    except OSError:
        gui_logger.warning('Could not create log file handler')


def main():
    parser = argparse.ArgumentParser(description='Talking Talent web API')
    parser.add_argument('--config', '-c', default=talking_talent.TalentTracker.DEFAULT_CONFIG_FILE,
                        help='Path to config file (default: config.json, optional)')
    parser.add_argument('--data-dir', help='Directory holding the JSON data files')
    parser.add_argument('--host', help='Interface to bind (default from config)')
    parser.add_argument('--port', type=int, help='Port to listen on (default from config)')
    parser.add_argument('--debug', action='store_true', help='Run Flask in debug mode')
    args = parser.parse_args()

    global tracker
    try:
        tracker = talking_talent.TalentTracker(config_path=args.config, data_dir=args.data_dir)
    except TalentError as e:
        gui_logger.error("Could not start: %s", e)
        raise SystemExit(1)
    _add_file_logging(tracker.config.get('log_level', log_level))

    host = args.host or tracker.config['host']
    port = args.port or tracker.config['port']
    gui_logger.info("Serving Talking Talent on http://%s:%s (data in %s)",
                    host, port, os.path.abspath(tracker.data_dir))
    app.run(host=host, port=port, debug=args.debug)


if __name__ == '__main__':
    main()
