import logging
from flask import Blueprint, jsonify, request

from auth import require_auth
from errors import LaunchError, ValidationError
from .common import error_response, get_session

logger = logging.getLogger(__name__)

server_bp = Blueprint("server", __name__)

MAX_LOG_LINES = 1000


@server_bp.route("/api/server/status", methods=["GET"])
@require_auth
def server_status():
    """Get llama-server process status"""
    return jsonify(get_session().status())


@server_bp.route("/api/server/start", methods=["POST"])
@require_auth
def start_server():
    """Build the command from the live settings and launch llama-server"""
    session = get_session()

    if session.is_running:
        return error_response("ALREADY_RUNNING", "llama-server is already running", 409)

    try:
        handle = session.start_server()
    except ValidationError as e:
        return error_response("VALIDATION_FAILED", str(e), 400)
    except LaunchError as e:
        logger.error(f"Failed to start llama-server: {e}")
        return error_response("LAUNCH_FAILED", session.last_error or str(e), 500)
    except Exception as e:
        logger.error(f"Unexpected error starting llama-server: {e}", exc_info=True)
        return error_response("INTERNAL_ERROR", str(e), 500)

    return jsonify(
        {
            "success": True,
            "pid": handle.pid,
            "command": " ".join([handle.executable] + handle.args),
            "message": "llama-server starting",
        }
    ), 202


@server_bp.route("/api/server/stop", methods=["POST"])
@require_auth
def stop_server():
    """Kill llama-server"""
    try:
        stopped = get_session().stop_server()
    except Exception as e:
        logger.error(f"Failed to stop llama-server: {e}", exc_info=True)
        return error_response("INTERNAL_ERROR", str(e), 500)

    return jsonify(
        {
            "success": True,
            "stopped": stopped,
            "message": "Server stopped" if stopped else "Server was not running",
        }
    ), 200


@server_bp.route("/api/server/logs", methods=["GET"])
@require_auth
def get_logs():
    """
    Get captured output.

    Query: after=<seq> returns only newer lines, limit caps the count.
    """
    session = get_session()
    after = request.args.get("after", default=0, type=int)
    limit = request.args.get("limit", default=MAX_LOG_LINES, type=int)
    limit = min(max(limit, 1), MAX_LOG_LINES)

    lines = session.logs(after=after, limit=limit)
    return jsonify(
        {
            "lines": lines,
            "last_seq": lines[-1]["seq"] if lines else after,
            "running": session.is_running,
        }
    )


@server_bp.route("/api/server/logs", methods=["DELETE"])
@require_auth
def clear_logs():
    """Clear the captured output"""
    get_session().clear_logs()
    return jsonify({"success": True}), 200
