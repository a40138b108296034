import re
from typing import Any, List, Optional, Tuple

from server_settings import FIELD_TYPES, LoraAdapter, ServerSettings, decode_field

# Any one of these is enough for llama-server to find a model
MODEL_SOURCE_FIELDS = ("model_path", "hf_repo", "model_dir", "model_url")

MISSING_MODEL_SOURCE_MESSAGE = (
    "Please provide a model path, HuggingFace repo, model directory, or model URL."
)

MAX_PATH_LENGTH = 4096

UNSAFE_PATH_PATTERN = re.compile(r"[\x00\r\n]")


def validate_model_source(settings: ServerSettings) -> Tuple[bool, Optional[str]]:
    if any(getattr(settings, name) for name in MODEL_SOURCE_FIELDS):
        return True, None
    return False, MISSING_MODEL_SOURCE_MESSAGE


def validate_settings_update(changes: Any) -> Tuple[bool, List[str]]:
    """
    Check a partial settings update before any field is assigned.

    Returns:
        (is_valid, list_of_error_messages)
    """
    if not isinstance(changes, dict):
        return False, ["Settings update must be a JSON object"]

    if not changes:
        return False, ["Settings update is empty"]

    errors = []
    for name, value in changes.items():
        if name not in FIELD_TYPES:
            errors.append(f"Unknown setting: {name}")
            continue
        try:
            decode_field(name, value)
        except (TypeError, ValueError) as e:
            errors.append(str(e))

    return len(errors) == 0, errors


def validate_file_path(path: Any) -> Tuple[bool, Optional[str]]:
    if not path:
        return False, "path is required"

    if not isinstance(path, str):
        return False, "path must be a string"

    if len(path) > MAX_PATH_LENGTH:
        return False, f"path too long (max {MAX_PATH_LENGTH} characters)"

    if UNSAFE_PATH_PATTERN.search(path):
        return False, "path contains invalid characters"

    return True, None


def validate_lora_adapter(payload: Any) -> Tuple[bool, Optional[str]]:
    if not isinstance(payload, dict):
        return False, "LoRA adapter must be a JSON object"

    unknown = set(payload) - {"path", "scale"}
    if unknown:
        return False, f"Unknown LoRA adapter fields: {', '.join(sorted(unknown))}"

    try:
        LoraAdapter.from_dict(payload)
    except TypeError as e:
        return False, str(e)

    return True, None
