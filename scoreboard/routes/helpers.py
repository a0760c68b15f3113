from flask import jsonify, request

from shared.results import FailureKind, Result

FAILURE_STATUS = {
    FailureKind.NOT_FOUND: 404,
    FailureKind.PRECONDITION_FAILED: 400,
    FailureKind.ALREADY_EXISTS: 409,
    FailureKind.INVALID_INPUT: 400,
}


def failure_response(result: Result):
    return jsonify(result.to_dict()), FAILURE_STATUS.get(result.kind, 400)


def not_found(what: str):
    return jsonify({'error': f'{what} not found', 'kind': FailureKind.NOT_FOUND.value}), 404


def request_data() -> dict:
    data = request.get_json(silent=True)
    return data if isinstance(data, dict) else {}


def flag(data: dict, name: str) -> bool:
    """Boolean option from the JSON body or the query string."""
    value = data.get(name, request.args.get(name, False))
    if isinstance(value, str):
        return value.lower() in ('1', 'true', 'yes')
    return bool(value)
