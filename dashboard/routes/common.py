from datetime import datetime, timezone
from typing import List, Optional

from flask import current_app, jsonify

from errors import PersistenceError, SettingsEncodeError, SettingsIOError
from session import ManagerSession


def utc_timestamp() -> str:
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


def get_session() -> ManagerSession:
    return current_app.config["MANAGER_SESSION"]


def error_response(code: str, message: str, status: int, details: Optional[List[str]] = None):
    error = {"code": code, "message": message}
    if details:
        error["details"] = details
    return jsonify({"error": error, "timestamp": utc_timestamp()}), status


def persistence_error_response(e: PersistenceError):
    """Map a save/load failure to an error response."""
    if isinstance(e, SettingsIOError):
        return error_response("SETTINGS_IO_ERROR", str(e), 400)
    if isinstance(e, SettingsEncodeError):
        return error_response("SETTINGS_ENCODE_ERROR", str(e), 500)
    return error_response("SETTINGS_DECODE_ERROR", str(e), 400)
