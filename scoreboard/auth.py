import hmac
import logging
from functools import wraps

from flask import current_app, jsonify, request

logger = logging.getLogger(__name__)

PIN_HEADER = 'X-Admin-Pin'


def provided_pin():
    pin = request.headers.get(PIN_HEADER)
    if pin:
        return pin
    data = request.get_json(silent=True) or {}
    pin = data.get('pin') if isinstance(data, dict) else None
    return str(pin) if pin is not None else None


def check_pin():
    """Returns an error response tuple, or None when the admin PIN matches."""
    configured = current_app.config.get('ADMIN_PIN')
    if not configured:
        logger.error("ADMIN_PIN is not configured; refusing admin operation")
        return jsonify({'error': 'Admin PIN is not configured on the server'}), 500

    pin = provided_pin()
    if not pin:
        return jsonify({'error': 'Admin PIN is required'}), 401

    if not hmac.compare_digest(pin.encode(), str(configured).encode()):
        logger.warning(f"Invalid admin PIN for {request.method} {request.path}")
        return jsonify({'error': 'Invalid admin PIN'}), 401

    return None


def require_pin(view):
    @wraps(view)
    def wrapped(*args, **kwargs):
        denied = check_pin()
        if denied is not None:
            return denied
        return view(*args, **kwargs)
    return wrapped
