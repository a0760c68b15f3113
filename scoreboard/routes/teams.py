from flask import Blueprint, current_app, jsonify

from ..auth import require_pin
from ..models import Team
from .helpers import failure_response, not_found, request_data

bp = Blueprint('teams', __name__, url_prefix='/api/v1/teams')


@bp.route('/<team_id>', methods=['GET'])
def get_team(team_id: str):
    team = Team.query.filter_by(team_id=team_id).first()
    if not team:
        return not_found('Team')
    return jsonify(team.to_dict())


@bp.route('/<team_id>', methods=['PUT'])
def update_team(team_id: str):
    data = request_data()
    result = current_app.registry.update_team(
        team_id,
        name=data.get('name'),
        players=data.get('players')
    )
    if not result:
        return failure_response(result)

    body = result.to_dict()
    body['team'] = result.value.to_dict()
    return jsonify(body)


@bp.route('/<team_id>', methods=['DELETE'])
@require_pin
def remove_team(team_id: str):
    result = current_app.registry.remove_team(team_id)
    if not result:
        return failure_response(result)
    return jsonify(result.to_dict())
