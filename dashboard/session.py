"""
The control panel session: live settings, the server process and its log.
"""

import logging
import threading
from collections import deque
from pathlib import Path
from typing import Any, Dict, List, Optional

from command_builder import build_command_preview, build_server_args
from errors import LaunchError, PersistenceError, ValidationError
from server_process import LogLine, ProcessHandle, ServerProcess
from server_settings import LoraAdapter, ServerSettings, decode_field
from settings_store import DEFAULT_SETTINGS_FILENAME, load_settings, save_settings
from validators import validate_model_source

logger = logging.getLogger(__name__)

MANAGER_STREAM = "manager"

DEFAULT_POLL_INTERVAL = 0.2
DEFAULT_HISTORY_LIMIT = 5000


class ManagerSession:
    """
    Owns the one live ``ServerSettings`` and the llama-server it launches.

    Every read and write of the settings goes through ``self._lock``, so the
    HTTP handlers (one thread per request) never see a half-applied update.
    Output is moved from the process buffer into the numbered log history by
    a poller thread while the server runs.
    """

    def __init__(
        self,
        settings: Optional[ServerSettings] = None,
        process: Optional[ServerProcess] = None,
        exe_path: Optional[str] = None,
        settings_file: str = DEFAULT_SETTINGS_FILENAME,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
        history_limit: int = DEFAULT_HISTORY_LIMIT,
    ):
        self._exe_path = exe_path
        self.settings = settings if settings is not None else self._default_settings()
        self.process = process if process is not None else ServerProcess()
        self.settings_file = settings_file
        self.poll_interval = poll_interval

        self.last_error: Optional[str] = None

        self._lock = threading.RLock()
        self._history = deque(maxlen=history_limit)
        self._next_seq = 1
        self._watching = False

        self._poller: Optional[threading.Thread] = None
        self._poller_stop: Optional[threading.Event] = None

    def _default_settings(self) -> ServerSettings:
        settings = ServerSettings()
        if self._exe_path:
            settings.exe_path = self._exe_path
        return settings

    # ============================================
    # Settings
    # ============================================

    def snapshot(self) -> ServerSettings:
        """Copy of the live settings, safe to read outside the lock."""
        with self._lock:
            return self.settings.copy()

    def update_settings(self, changes: Dict[str, Any]) -> ServerSettings:
        """
        Assign several fields at once.

        All values are decoded before the first assignment, so a bad value
        leaves the settings untouched.

        Raises:
            ValueError: Unknown field name
            TypeError: Value of the wrong type
        """
        decoded = {name: decode_field(name, value) for name, value in changes.items()}
        with self._lock:
            for name, value in decoded.items():
                setattr(self.settings, name, value)
            logger.debug(f"Updated settings: {', '.join(decoded)}")
            return self.settings.copy()

    def reset_settings(self) -> ServerSettings:
        with self._lock:
            self.settings = self._default_settings()
            logger.info("Settings reset to defaults")
            return self.settings.copy()

    def replace_settings(self, settings: ServerSettings) -> ServerSettings:
        """Swap in a whole new settings object, as after a load."""
        with self._lock:
            self.settings = settings.copy()
            self.last_error = None
            return self.settings.copy()

    def add_lora_adapter(self, path: str = "", scale: float = 1.0) -> int:
        """Append an adapter and return its index."""
        with self._lock:
            self.settings.lora_adapters.append(LoraAdapter(path=path, scale=float(scale)))
            return len(self.settings.lora_adapters) - 1

    def update_lora_adapter(self, index: int, changes: Dict[str, Any]) -> LoraAdapter:
        """
        Raises:
            IndexError: No adapter at ``index``
            TypeError: Value of the wrong type
        """
        updated = LoraAdapter.from_dict(changes)
        with self._lock:
            adapter = self._get_adapter(index)
            if "path" in changes:
                adapter.path = updated.path
            if "scale" in changes:
                adapter.scale = updated.scale
            return LoraAdapter(path=adapter.path, scale=adapter.scale)

    def remove_lora_adapter(self, index: int) -> LoraAdapter:
        with self._lock:
            self._get_adapter(index)
            return self.settings.lora_adapters.pop(index)

    def _get_adapter(self, index: int) -> LoraAdapter:
        adapters = self.settings.lora_adapters
        if index < 0 or index >= len(adapters):
            raise IndexError(f"No LoRA adapter at index {index}")
        return adapters[index]

    def preview(self) -> Dict[str, Any]:
        with self._lock:
            executable = self.settings.exe_path
            args = build_server_args(self.settings)
            command = build_command_preview(self.settings)
        return {"executable": executable, "args": args, "command": command}

    # ============================================
    # Persistence
    # ============================================

    def save(self, path: Optional[str] = None) -> str:
        """
        Save the live settings.

        Raises:
            PersistenceError: The file could not be written or encoded
        """
        target = str(path or self.settings_file)
        settings = self.snapshot()
        try:
            save_settings(settings, target)
        except PersistenceError as e:
            with self._lock:
                self.last_error = f"Save failed: {e}"
            logger.error(f"Failed to save settings to {target}: {e}")
            raise
        return target

    def load(self, path: Optional[str] = None) -> ServerSettings:
        """
        Replace the live settings with the contents of a file.

        Raises:
            PersistenceError: The file could not be read or decoded; the
                live settings are left as they were
        """
        target = str(path or self.settings_file)
        try:
            loaded = load_settings(target)
        except PersistenceError as e:
            with self._lock:
                self.last_error = f"Load failed: {e}"
            logger.error(f"Failed to load settings from {target}: {e}")
            raise

        return self.replace_settings(loaded)

    def settings_file_exists(self) -> bool:
        return Path(self.settings_file).is_file()

    # ============================================
    # Server lifecycle
    # ============================================

    @property
    def is_running(self) -> bool:
        return self.process.is_running

    def start_server(self) -> ProcessHandle:
        """
        Validate the settings, build the command and launch llama-server.

        Raises:
            ValidationError: No model source is configured
            LaunchError: Already running, or the executable could not start
        """
        with self._lock:
            if self.process.is_running:
                raise LaunchError("llama-server is already running")

            valid, error = validate_model_source(self.settings)
            if not valid:
                self.last_error = error
                logger.warning(f"Refusing to start llama-server: {error}")
                raise ValidationError(error)

            self.last_error = None
            executable = self.settings.exe_path
            args = build_server_args(self.settings)

            self.process.drain()
            self._history.clear()
            self._append_manager(f"[MANAGER] Starting: {' '.join([executable] + args)}")

            try:
                handle = self.process.launch(executable, args)
            except LaunchError as e:
                self.last_error = f"Failed to start: {e}"
                self._append_manager(f"[ERROR] {e}")
                raise

            self._watching = True
            previous = self._detach_poller()
            self._start_poller()

        self._join_poller(previous)
        return handle

    def stop_server(self) -> bool:
        """
        Kill llama-server if it is running.

        Returns:
            True if a running server was stopped
        """
        with self._lock:
            was_running = self.process.is_running
            # Exited on its own since the poller last looked
            exited = self._watching and not was_running
            self._watching = False
            poller = self._detach_poller()

        self._join_poller(poller)
        returncode = self.process.stop()
        lines = self.process.drain()

        with self._lock:
            self._append_lines(lines)
            if was_running:
                self._append_manager("[MANAGER] Server stopped.")
            elif exited:
                self._append_manager(f"[MANAGER] Server exited with code {returncode}.")
                logger.warning(f"llama-server exited with code {returncode}")
        return was_running

    def status(self) -> Dict[str, Any]:
        handle = self.process.handle
        running = self.process.is_running
        with self._lock:
            return {
                "running": running,
                "pid": handle.pid if handle and running else None,
                "started_at": handle.started_at if handle and running else None,
                "returncode": None if running else self.process.returncode,
                "error": self.last_error,
            }

    def close(self):
        """End of session: stop the server and the poller."""
        self.stop_server()

    # ============================================
    # Log history
    # ============================================

    def poll_once(self) -> bool:
        """
        Move buffered output into the history.

        Returns:
            False once the watched server has exited on its own
        """
        exited = False
        with self._lock:
            if self._watching and not self.process.is_running:
                self._watching = False
                exited = True

        if exited:
            # Let the readers reach EOF so no trailing output is lost
            self.process.join_readers()

        lines = self.process.drain()
        with self._lock:
            self._append_lines(lines)
            if exited:
                returncode = self.process.returncode
                self._append_manager(f"[MANAGER] Server exited with code {returncode}.")
                logger.warning(f"llama-server exited with code {returncode}")
        return not exited

    def logs(self, after: int = 0, limit: Optional[int] = None) -> List[Dict[str, Any]]:
        """History entries with a sequence number greater than ``after``."""
        with self._lock:
            entries = [entry for entry in self._history if entry["seq"] > after]
        if limit is not None:
            entries = entries[-limit:]
        return entries

    def clear_logs(self):
        with self._lock:
            self._history.clear()

    def _append_manager(self, text: str):
        self._append_lines([LogLine(MANAGER_STREAM, text)])

    def _append_lines(self, lines: List[LogLine]):
        for line in lines:
            entry = line.to_dict()
            entry["seq"] = self._next_seq
            self._next_seq += 1
            self._history.append(entry)

    def _start_poller(self):
        stop_event = threading.Event()
        poller = threading.Thread(
            target=self._poll_loop, args=(stop_event,), name="log-poller", daemon=True
        )
        self._poller_stop = stop_event
        self._poller = poller
        poller.start()

    def _detach_poller(self) -> Optional[threading.Thread]:
        """Signal the current poller to stop; the caller joins it outside the lock."""
        poller, stop_event = self._poller, self._poller_stop
        self._poller = None
        self._poller_stop = None
        if stop_event is not None:
            stop_event.set()
        return poller

    def _join_poller(self, poller: Optional[threading.Thread]):
        if poller is not None and poller is not threading.current_thread():
            poller.join(self.poll_interval * 5 + 1)

    def _poll_loop(self, stop_event: threading.Event):
        while not stop_event.wait(self.poll_interval):
            if not self.poll_once():
                break
