from functools import wraps
import logging

from flask import request, jsonify, g

from petcare import get_services
from petcare.utils import firebase

logger = logging.getLogger(__name__)


def _bearer_token():
    header = request.headers.get('Authorization', '')
    scheme, _, token = header.partition(' ')
    if scheme.lower() != 'bearer' or not token.strip():
        return None
    return token.strip()


def require_auth(f):
    """
    Decorator that requires a Firebase ID token for a route.
    Verifies the ``Authorization: Bearer <token>`` header and exposes the
    caller's uid as ``g.user_id``.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        # Skip authentication for OPTIONS requests
        if request.method == 'OPTIONS':
            return f(*args, **kwargs)

        token = _bearer_token()
        if not token:
            return jsonify({"success": False, "error": "Unauthorized"}), 401

        try:
            claims = firebase.verify_id_token(token, app=get_services().firebase_app)
        except Exception as e:
            logger.info(f"Rejected Firebase ID token: {str(e)}")
            return jsonify({"success": False, "error": "Invalid or expired token"}), 401

        uid = claims.get('uid') or claims.get('sub')
        if not uid:
            return jsonify({"success": False, "error": "Invalid or expired token"}), 401

        g.user_id = uid
        g.user_email = claims.get('email')
        return f(*args, **kwargs)

    return decorated_function
