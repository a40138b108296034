import logging
import secrets
from datetime import datetime, timezone
from functools import wraps
from flask import current_app, jsonify, request

logger = logging.getLogger(__name__)


def _auth_error(code: str, message: str):
    return jsonify(
        {
            "error": {"code": code, "message": message},
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }
    ), 401


def require_auth(f):
    """Decorator requiring the panel's bearer token"""

    @wraps(f)
    def decorated_function(*args, **kwargs):
        auth_header = request.headers.get("Authorization")

        if not auth_header:
            logger.warning(f"Missing Authorization header from {request.remote_addr}")
            return _auth_error("MISSING_TOKEN", "Authorization header is required")

        if not auth_header.startswith("Bearer "):
            logger.warning(
                f"Invalid Authorization header format from {request.remote_addr}"
            )
            return _auth_error(
                "INVALID_FORMAT", "Authorization header must be: Bearer <token>"
            )

        token = auth_header[len("Bearer "):]

        # Constant-time comparison
        if not secrets.compare_digest(token, current_app.config["DASHBOARD_TOKEN"]):
            logger.warning(f"Invalid token attempt from {request.remote_addr}")
            return _auth_error("INVALID_TOKEN", "Authentication failed")

        return f(*args, **kwargs)

    return decorated_function
