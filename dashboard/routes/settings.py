import logging
from flask import Blueprint, jsonify, request

from auth import require_auth
from errors import PersistenceError
from flag_metadata import CATEGORIES, get_flags_by_category
from validators import (
    MODEL_SOURCE_FIELDS,
    validate_file_path,
    validate_lora_adapter,
    validate_settings_update,
)
from .common import error_response, get_session, persistence_error_response

logger = logging.getLogger(__name__)

settings_bp = Blueprint("settings", __name__)


# ============================================
# Settings document
# ============================================


@settings_bp.route("/api/settings", methods=["GET"])
@require_auth
def get_settings():
    """Get the live server settings"""
    session = get_session()
    return jsonify(
        {
            "settings": session.snapshot().to_dict(),
            "settings_file": session.settings_file,
        }
    )


@settings_bp.route("/api/settings", methods=["PUT"])
@require_auth
def update_settings():
    """
    Update one or more settings.

    Body: {"field": value, ...}. Nothing is changed if any value is invalid.
    """
    data = request.get_json(silent=True)
    if data is None:
        return error_response("INVALID_REQUEST", "Request body is required", 400)

    valid, errors = validate_settings_update(data)
    if not valid:
        return error_response("VALIDATION_FAILED", "Validation failed", 400, errors)

    try:
        settings = get_session().update_settings(data)
    except (TypeError, ValueError) as e:
        return error_response("VALIDATION_FAILED", str(e), 400)

    return jsonify({"success": True, "settings": settings.to_dict()}), 200


@settings_bp.route("/api/settings/reset", methods=["POST"])
@require_auth
def reset_settings():
    """Restore every setting to its default"""
    settings = get_session().reset_settings()
    return jsonify({"success": True, "settings": settings.to_dict()}), 200


@settings_bp.route("/api/settings/preview", methods=["GET"])
@require_auth
def preview_command():
    """Get the llama-server command built from the live settings"""
    return jsonify(get_session().preview())


# ============================================
# LoRA adapters
# ============================================


@settings_bp.route("/api/settings/lora", methods=["GET"])
@require_auth
def list_lora_adapters():
    adapters = get_session().snapshot().lora_adapters
    return jsonify({"adapters": [a.to_dict() for a in adapters]})


@settings_bp.route("/api/settings/lora", methods=["POST"])
@require_auth
def add_lora_adapter():
    """Append a LoRA adapter (body optional: {"path", "scale"})"""
    data = request.get_json(silent=True) or {}

    valid, error = validate_lora_adapter(data)
    if not valid:
        return error_response("VALIDATION_FAILED", error, 400)

    index = get_session().add_lora_adapter(
        path=data.get("path", ""), scale=data.get("scale", 1.0)
    )
    return jsonify({"success": True, "index": index}), 201


@settings_bp.route("/api/settings/lora/<int:index>", methods=["PUT"])
@require_auth
def update_lora_adapter(index):
    data = request.get_json(silent=True)
    if not data:
        return error_response("INVALID_REQUEST", "Request body is required", 400)

    valid, error = validate_lora_adapter(data)
    if not valid:
        return error_response("VALIDATION_FAILED", error, 400)

    try:
        adapter = get_session().update_lora_adapter(index, data)
    except IndexError as e:
        return error_response("NOT_FOUND", str(e), 404)

    return jsonify({"success": True, "index": index, "adapter": adapter.to_dict()}), 200


@settings_bp.route("/api/settings/lora/<int:index>", methods=["DELETE"])
@require_auth
def remove_lora_adapter(index):
    try:
        adapter = get_session().remove_lora_adapter(index)
    except IndexError as e:
        return error_response("NOT_FOUND", str(e), 404)

    return jsonify({"success": True, "removed": adapter.to_dict()}), 200


# ============================================
# Save / load
# ============================================


def _requested_path():
    """
    Path from the request body, or None for the default settings file.

    Returns:
        (path, error_response); error_response is None when the body is usable
    """
    data = request.get_json(silent=True)
    if data is None:
        return None, None
    if not isinstance(data, dict):
        return None, error_response(
            "INVALID_REQUEST", "Request body must be a JSON object", 400
        )

    path = data.get("path")
    if path is None:
        return None, None
    valid, error = validate_file_path(path)
    if not valid:
        return None, error_response("INVALID_PATH", error, 400)
    return path, None


@settings_bp.route("/api/settings/save", methods=["POST"])
@require_auth
def save_settings():
    """Save the live settings to a JSON file"""
    path, error = _requested_path()
    if error is not None:
        return error

    try:
        saved_to = get_session().save(path)
    except PersistenceError as e:
        return persistence_error_response(e)
    except Exception as e:
        logger.error(f"Failed to save settings: {e}", exc_info=True)
        return error_response("INTERNAL_ERROR", str(e), 500)

    return jsonify({"success": True, "path": saved_to}), 200


@settings_bp.route("/api/settings/load", methods=["POST"])
@require_auth
def load_settings():
    """Replace the live settings with a saved JSON file"""
    path, error = _requested_path()
    if error is not None:
        return error

    try:
        settings = get_session().load(path)
    except PersistenceError as e:
        return persistence_error_response(e)
    except Exception as e:
        logger.error(f"Failed to load settings: {e}", exc_info=True)
        return error_response("INTERNAL_ERROR", str(e), 500)

    return jsonify({"success": True, "settings": settings.to_dict()}), 200


# ============================================
# Form metadata
# ============================================


@settings_bp.route("/api/flag-metadata", methods=["GET"])
@require_auth
def get_flags_metadata():
    """Get flag metadata grouped by settings tab"""
    return jsonify(
        {
            "categories": CATEGORIES,
            "model_source_fields": list(MODEL_SOURCE_FIELDS),
            "groups": get_flags_by_category(),
        }
    ), 200
