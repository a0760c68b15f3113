from flask import Blueprint, current_app, jsonify, request

from ..auth import require_pin
from .helpers import failure_response, flag, not_found, request_data

bp = Blueprint('tournaments', __name__, url_prefix='/api/v1/tournaments')


# ==================== Tournament CRUD ====================

@bp.route('', methods=['GET'])
def list_tournaments():
    status = request.args.get('status')
    limit = request.args.get('limit', 50, type=int)
    offset = request.args.get('offset', 0, type=int)

    tournaments = current_app.registry.list_tournaments(status=status, limit=limit, offset=offset)

    return jsonify({
        'tournaments': [t.to_dict() for t in tournaments],
        'count': len(tournaments),
        'limit': limit,
        'offset': offset
    })


@bp.route('', methods=['POST'])
def create_tournament():
    data = request_data()
    result = current_app.registry.create_tournament(
        name=data.get('name'),
        start_date=data.get('startDate'),
        end_date=data.get('endDate'),
        description=data.get('description')
    )
    if not result:
        return failure_response(result)

    return jsonify({
        'message': result.message,
        'tournament': result.value.to_dict()
    }), 201


@bp.route('/history', methods=['GET'])
def tournament_history():
    limit = request.args.get('limit', 50, type=int)
    tournaments = current_app.registry.tournament_history(limit=limit)
    return jsonify({
        'tournaments': [t.to_dict() for t in tournaments],
        'count': len(tournaments)
    })


@bp.route('/<tournament_id>', methods=['GET'])
def get_tournament(tournament_id: str):
    tournament = current_app.registry.get_tournament(tournament_id)
    if not tournament:
        return not_found('Tournament')
    return jsonify(tournament.to_dict())


@bp.route('/<tournament_id>', methods=['PUT'])
@require_pin
def update_tournament(tournament_id: str):
    data = request_data()
    result = current_app.registry.update_tournament(
        tournament_id,
        name=data.get('name'),
        description=data.get('description'),
        start_date=data.get('startDate'),
        end_date=data.get('endDate'),
        status=data.get('status')
    )
    if not result:
        return failure_response(result)

    return jsonify({
        'message': result.message,
        'tournament': result.value.to_dict()
    })


@bp.route('/<tournament_id>', methods=['DELETE'])
@require_pin
def delete_tournament(tournament_id: str):
    result = current_app.registry.delete_tournament(tournament_id)
    if not result:
        return failure_response(result)
    return jsonify(result.to_dict())


# ==================== Teams ====================

@bp.route('/<tournament_id>/teams', methods=['GET'])
def list_teams(tournament_id: str):
    result = current_app.registry.list_teams(tournament_id)
    if not result:
        return failure_response(result)

    return jsonify({
        'teams': [t.to_dict() for t in result.value],
        'count': len(result.value)
    })


@bp.route('/<tournament_id>/teams', methods=['POST'])
def register_team(tournament_id: str):
    data = request_data()
    result = current_app.registry.register_team(
        tournament_id,
        name=data.get('name'),
        players=data.get('players')
    )
    if not result:
        return failure_response(result)

    return jsonify({
        'message': result.message,
        'team': result.value.to_dict()
    }), 201


# ==================== Matches and bracket ====================

@bp.route('/<tournament_id>/matches', methods=['GET'])
def list_matches(tournament_id: str):
    tournament = current_app.registry.get_tournament(tournament_id)
    if not tournament:
        return not_found('Tournament')

    match_type = request.args.get('type')
    matches = [m for m in tournament.matches if not match_type or m.match_type == match_type]
    matches.sort(key=lambda m: (m.sequence is None, m.sequence or 0, m.id))

    return jsonify({
        'matches': [m.to_dict() for m in matches],
        'count': len(matches)
    })


@bp.route('/<tournament_id>/matches', methods=['POST'])
def add_group_match(tournament_id: str):
    data = request_data()
    result = current_app.coordinator.add_group_match(
        tournament_id, data.get('team1Id'), data.get('team2Id'))
    if not result:
        return failure_response(result)

    return jsonify({
        'message': result.message,
        'match': result.value.to_dict()
    }), 201


@bp.route('/<tournament_id>/group-matches', methods=['POST'])
def generate_group_matches(tournament_id: str):
    replace = flag(request_data(), 'replace')
    result = current_app.coordinator.generate_group_matches(tournament_id, replace=replace)
    if not result:
        return failure_response(result)

    body = result.to_dict()
    body['matches'] = [m.to_dict() for m in result.value]
    return jsonify(body), 201


@bp.route('/<tournament_id>/semifinals', methods=['POST'])
def generate_semifinals(tournament_id: str):
    regenerate = flag(request_data(), 'regenerate')
    result = current_app.coordinator.generate_semifinals(tournament_id, regenerate=regenerate)
    if not result:
        return failure_response(result)

    semifinal1, semifinal2 = result.value
    return jsonify({
        'message': result.message,
        'semifinal1': semifinal1.to_dict(),
        'semifinal2': semifinal2.to_dict()
    }), 201


@bp.route('/<tournament_id>/semifinal2', methods=['POST'])
def backfill_semifinal2(tournament_id: str):
    result = current_app.coordinator.backfill_semifinal2(tournament_id)
    if not result:
        return failure_response(result)

    body = result.to_dict()
    body['match'] = result.value.to_dict() if result.value else None
    return jsonify(body)


@bp.route('/<tournament_id>/final', methods=['POST'])
def generate_final(tournament_id: str):
    result = current_app.coordinator.generate_final(tournament_id)
    if not result:
        return failure_response(result)

    return jsonify({
        'message': result.message,
        'final': result.value.to_dict()
    }), 201


# ==================== Standings ====================

@bp.route('/<tournament_id>/standings', methods=['GET'])
def standings(tournament_id: str):
    result = current_app.coordinator.rank(tournament_id)
    if not result:
        return failure_response(result)

    return jsonify({
        'tournament_id': tournament_id,
        'standings': [s.to_dict() for s in result.value]
    })


@bp.route('/<tournament_id>/recalculate', methods=['POST'])
@require_pin
def recalculate(tournament_id: str):
    result = current_app.coordinator.recalculate_stats(tournament_id)
    if not result:
        return failure_response(result)

    body = result.to_dict()
    body['teams'] = [t.to_dict() for t in result.value]
    return jsonify(body)


@bp.route('/<tournament_id>/events', methods=['GET'])
def recent_events(tournament_id: str):
    count = request.args.get('count', 50, type=int)
    events = current_app.publisher.get_recent_events(tournament_id, count=count)
    return jsonify({
        'tournament_id': tournament_id,
        'events': [e.to_dict() for e in events]
    })
