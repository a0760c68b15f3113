from flask import Blueprint, current_app, jsonify

from ..auth import require_pin
from ..models import Match
from .helpers import failure_response, not_found, request_data

bp = Blueprint('matches', __name__, url_prefix='/api/v1/matches')


def first_present(data: dict, *names):
    for name in names:
        if name in data:
            return data[name]
    return None


@bp.route('/<match_id>', methods=['GET'])
def get_match(match_id: str):
    match = Match.query.filter_by(match_id=match_id).first()
    if not match:
        return not_found('Match')
    return jsonify(match.to_dict())


@bp.route('/<match_id>', methods=['PUT'])
def update_match(match_id: str):
    """Manual status/winner entry; completing a match runs the same cascade as scoring."""
    data = request_data()
    result = current_app.coordinator.update_match(
        match_id,
        status=data.get('status'),
        winner_id=first_present(data, 'winnerId', 'winner'),
        match_date=first_present(data, 'matchDate', 'match_date')
    )
    if not result:
        return failure_response(result)

    body = result.to_dict()
    body['match'] = result.value.to_dict()
    return jsonify(body)


@bp.route('/<match_id>', methods=['DELETE'])
@require_pin
def delete_match(match_id: str):
    result = current_app.coordinator.delete_match(match_id)
    if not result:
        return failure_response(result)
    return jsonify(result.to_dict())


@bp.route('/<match_id>/scores', methods=['POST'])
def record_set(match_id: str):
    data = request_data()
    result = current_app.coordinator.record_set(
        match_id,
        first_present(data, 'setNumber', 'set_number'),
        first_present(data, 'team1Score', 'team1_score'),
        first_present(data, 'team2Score', 'team2_score')
    )
    if not result:
        return failure_response(result)

    body = result.to_dict()
    body['match'] = result.value.to_dict()
    return jsonify(body)
