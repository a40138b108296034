"""Exceptions raised by the llama-server manager."""


class ManagerError(Exception):
    """Base exception for all manager errors."""

    pass


class ValidationError(ManagerError):
    """Settings are not launchable (e.g. no model source given)."""

    pass


class LaunchError(ManagerError):
    """The llama-server executable could not be started."""

    pass


class PersistenceError(ManagerError):
    """Saving or loading a settings file failed."""

    pass


class SettingsIOError(PersistenceError):
    """The settings file could not be read or written."""

    pass


class SettingsDecodeError(PersistenceError):
    """The settings file is not a valid settings document."""

    pass


class SettingsEncodeError(PersistenceError):
    """The settings could not be serialized."""

    pass
