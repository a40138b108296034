import logging
from flask import Blueprint, jsonify

from auth import require_auth
from .common import get_session, utc_timestamp

logger = logging.getLogger(__name__)

system_bp = Blueprint("system", __name__)

VERSION = "1.0.0"


@system_bp.route("/api/health", methods=["GET"])
def health():
    """Health check endpoint - no authentication required"""
    return jsonify(
        {
            "status": "healthy",
            "version": VERSION,
            "timestamp": utc_timestamp(),
            "server_running": get_session().is_running,
        }
    )


@system_bp.route("/api/auth/verify", methods=["POST"])
@require_auth
def verify_token():
    """Verify if the provided token is valid"""
    return jsonify({"valid": True, "message": "Token is valid"})
