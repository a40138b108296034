"""
Load and save server settings as JSON documents.
"""

import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Union

from errors import SettingsDecodeError, SettingsEncodeError, SettingsIOError
from server_settings import ServerSettings

logger = logging.getLogger(__name__)

DEFAULT_SETTINGS_FILENAME = "llama-config.json"

PathLike = Union[str, Path]


def encode_settings(settings: ServerSettings) -> str:
    """
    Serialize settings to JSON text.

    Raises:
        SettingsEncodeError: If a value cannot be represented in JSON
    """
    try:
        # NaN/Infinity are not valid JSON and would not load back elsewhere
        return json.dumps(settings.to_dict(), indent=2, allow_nan=False)
    except (TypeError, ValueError) as e:
        raise SettingsEncodeError(f"Cannot encode settings: {e}") from e


def decode_settings(text: str) -> ServerSettings:
    """
    Parse JSON text into settings.

    Raises:
        SettingsDecodeError: If the text is not a valid settings document
    """
    try:
        data = json.loads(text)
    except json.JSONDecodeError as e:
        raise SettingsDecodeError(f"Invalid JSON: {e}") from e

    try:
        return ServerSettings.from_dict(data)
    except (TypeError, ValueError) as e:
        raise SettingsDecodeError(f"Invalid settings document: {e}") from e


def save_settings(settings: ServerSettings, path: PathLike):
    """
    Write settings to ``path``, replacing any existing file atomically.

    Raises:
        SettingsEncodeError: If the settings cannot be serialized
        SettingsIOError: If the file cannot be written
    """
    text = encode_settings(settings)
    target = Path(path)

    temp_name = None
    try:
        # Write next to the target so os.replace stays on one filesystem
        fd, temp_name = tempfile.mkstemp(
            prefix=f".{target.name}.", suffix=".tmp", dir=str(target.parent)
        )
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(text)
        os.replace(temp_name, target)
        temp_name = None
    except OSError as e:
        raise SettingsIOError(f"Cannot write {target}: {e.strerror or e}") from e
    finally:
        if temp_name and os.path.exists(temp_name):
            os.unlink(temp_name)

    logger.info(f"Saved settings to {target}")


def load_settings(path: PathLike) -> ServerSettings:
    """
    Read settings from ``path``.

    Raises:
        SettingsIOError: If the file cannot be read
        SettingsDecodeError: If the file is not a valid settings document
    """
    target = Path(path)
    try:
        with open(target, "r", encoding="utf-8") as f:
            text = f.read()
    except UnicodeDecodeError as e:
        raise SettingsDecodeError(f"{target} is not UTF-8 text: {e}") from e
    except OSError as e:
        raise SettingsIOError(f"Cannot read {target}: {e.strerror or e}") from e

    settings = decode_settings(text)
    logger.info(f"Loaded settings from {target}")
    return settings
