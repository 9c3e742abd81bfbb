from flask import Blueprint, Response, current_app, request

from . import datastore
from .errors import ConcurrentRecalculation, InvalidScope
from .export import export_filename
from .recalculate import summarize
from .services import get_exporter, get_query, get_recalculator
from .validation import (
    MAX_PER_PAGE,
    parse_bool,
    parse_page,
    parse_race_id,
    parse_recalc_types,
    parse_result_type,
    parse_sort,
)


bp = Blueprint('leaderboard', __name__)


@bp.errorhandler(InvalidScope)
def _invalid_scope(exc):
    return {'success': False, 'error': str(exc)}, 400


@bp.errorhandler(ConcurrentRecalculation)
def _busy(exc):
    current_app.logger.warning("recalc_conflict race_id=%s type=%s", exc.race_id, exc.result_type)
    return {'success': False, 'error': str(exc), 'retryable': True}, 409, {'Retry-After': '5'}


def _require_race(race_id):
    """Reject unknown race ids before the ranking code runs."""
    if race_id is None:
        return None
    race = datastore.find_race(race_id)
    if race is None:
        raise InvalidScope(f"Race with ID {race_id} not found")
    return race


@bp.route('/health/db')
def health_db():
    """Database connectivity check; always HTTP 200 with a status body."""
    try:
        ok = datastore.ping()
    except Exception as e:  # pragma: no cover - best-effort health output
        return {'connected': False, 'status': 'error', 'error': str(e)}
    return {'connected': bool(ok), 'status': 'ok' if ok else 'unhealthy'}


@bp.route('/races')
def races():
    return {
        'success': True,
        'data': [
            {'race_id': r.race_id, 'race_name': r.name, 'race_date': r.date}
            for r in get_query().list_races()
        ],
    }


@bp.route('/leaderboard')
def leaderboard():
    race_id = parse_race_id(request.args.get('race_id'))
    result_type = parse_result_type(request.args.get('type'))
    _require_race(race_id)
    per_page = parse_page(
        request.args.get('per_page'),
        default=current_app.config['LEADERBOARD_PER_PAGE'],
        maximum=MAX_PER_PAGE,
    )
    view = get_query().public_leaderboard(
        race_id,
        search=request.args.get('search'),
        result_type=result_type,
        page=parse_page(request.args.get('page')),
        per_page=per_page,
    )
    return {'success': True, **view.to_dict()}


@bp.route('/leaderboard/export')
def export():
    race_id = parse_race_id(request.args.get('race_id'))
    result_type = parse_result_type(request.args.get('type'))
    race = _require_race(race_id)
    body = get_exporter().export_csv(race_id, result_type)
    filename = export_filename(race, result_type)
    return Response(
        body,
        mimetype='text/csv',
        headers={
            'Content-Disposition': f'attachment; filename="{filename}"',
        },
    )


@bp.route('/participants/<int:participant_id>/results')
def my_results(participant_id):
    """Personal results; the caller identity is resolved upstream."""
    race_id = parse_race_id(request.args.get('race_id'))
    _require_race(race_id)
    view = get_query().my_results(
        participant_id,
        search=request.args.get('search'),
        sort=parse_sort(request.args.get('sort')),
        result_type=parse_result_type(request.args.get('type')),
        race_id=race_id,
        page=parse_page(request.args.get('page')),
    )
    return {'success': True, **view.to_dict()}


@bp.route('/api/leaderboard/<int:race_id>/participants/<int:participant_id>')
def participant_result(race_id, participant_id):
    _require_race(race_id)
    entry = get_query().participant_result(race_id, participant_id)
    if entry is None:
        return {'success': False, 'message': 'Result not found'}, 404
    return {'success': True, 'data': entry.to_dict()}


@bp.route('/api/leaderboard/recalculate', methods=['POST'])
def recalculate():
    payload = request.get_json(silent=True)
    if payload is None:
        payload = {}
    if not isinstance(payload, dict):
        raise InvalidScope('Request body must be a JSON object.')
    race_id = parse_race_id(payload.get('race_id'))
    types = parse_recalc_types(payload.get('type'))
    _require_race(race_id)
    force = parse_bool(payload.get('force'))
    results = []
    recalculator = get_recalculator()
    for rtype in types:
        results.extend(recalculator.recalculate(race_id, rtype, force=force))
    current_app.logger.info(
        "recalc_request race_id=%s types=%s force=%s races=%d",
        race_id, ",".join(t.value for t in types), force, len(results),
    )
    return {
        'success': True,
        'races': [r.to_dict() for r in results],
        'totals': summarize(results),
    }
