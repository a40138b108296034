"""
Supervision of a single llama-server child process.

Output from stdout and stderr is read by one thread per stream into a shared
buffer; callers collect it with ``drain()`` on their own schedule.
"""

import logging
import os
import subprocess
import threading
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import IO, List, Optional

from errors import LaunchError

logger = logging.getLogger(__name__)

STDOUT = "stdout"
STDERR = "stderr"

# Readers exit on EOF once the child is gone; this only bounds the wait
READER_JOIN_TIMEOUT = 2.0


@dataclass
class LogLine:
    stream: str
    text: str

    def to_dict(self) -> dict:
        return {"stream": self.stream, "text": self.text}


@dataclass
class ProcessHandle:
    pid: int
    executable: str
    args: List[str] = field(default_factory=list)
    started_at: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "pid": self.pid,
            "executable": self.executable,
            "args": self.args,
            "started_at": self.started_at,
        }


class ServerProcess:
    def __init__(self):
        self._lock = threading.Lock()
        self._buffer: List[LogLine] = []
        self._proc: Optional[subprocess.Popen] = None
        self._handle: Optional[ProcessHandle] = None
        self._readers: List[threading.Thread] = []

    @property
    def is_running(self) -> bool:
        with self._lock:
            proc = self._proc
        return proc is not None and proc.poll() is None

    @property
    def returncode(self) -> Optional[int]:
        with self._lock:
            proc = self._proc
        if proc is None:
            return None
        return proc.poll()

    @property
    def handle(self) -> Optional[ProcessHandle]:
        with self._lock:
            return self._handle

    def launch(self, executable: str, args: List[str]) -> ProcessHandle:
        """
        Spawn ``executable`` with ``args`` and start capturing its output.

        Raises:
            LaunchError: If a process is already running or the spawn fails
        """
        if self.is_running:
            raise LaunchError("llama-server is already running")

        if not executable:
            raise LaunchError("No llama-server executable configured")

        cmd = [executable] + list(args)

        kwargs = {}
        if os.name == "nt":
            # Keep a console window from popping up next to the panel
            kwargs["creationflags"] = subprocess.CREATE_NO_WINDOW

        try:
            proc = subprocess.Popen(
                cmd,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                **kwargs,
            )
        except (OSError, ValueError) as e:
            logger.error(f"Failed to launch {executable}: {e}")
            raise LaunchError(str(e)) from e

        handle = ProcessHandle(
            pid=proc.pid,
            executable=executable,
            args=list(args),
            started_at=datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ"),
        )
        readers = [
            threading.Thread(
                target=self._read_stream, args=(proc.stdout, STDOUT),
                name=f"llama-server-{STDOUT}", daemon=True,
            ),
            threading.Thread(
                target=self._read_stream, args=(proc.stderr, STDERR),
                name=f"llama-server-{STDERR}", daemon=True,
            ),
        ]

        with self._lock:
            self._proc = proc
            self._handle = handle
            self._readers = readers

        for reader in readers:
            reader.start()

        logger.info(f"Launched llama-server (pid {proc.pid}): {' '.join(cmd)}")
        return handle

    def stop(self) -> Optional[int]:
        """
        Kill the child process and wait for it to exit.

        Returns:
            The exit code, or None if nothing was ever launched
        """
        with self._lock:
            proc = self._proc
        if proc is None:
            return None

        if proc.poll() is None:
            try:
                proc.kill()
            except OSError:
                pass
            logger.info(f"Killed llama-server (pid {proc.pid})")
        proc.wait()

        self.join_readers()
        return proc.returncode

    def join_readers(self, timeout: float = READER_JOIN_TIMEOUT):
        """Wait for the reader threads to hit EOF."""
        with self._lock:
            readers = list(self._readers)
        for reader in readers:
            if reader is not threading.current_thread():
                reader.join(timeout)

    def drain(self) -> List[LogLine]:
        """Take every buffered line, oldest first."""
        with self._lock:
            lines = self._buffer
            self._buffer = []
        return lines

    def _read_stream(self, stream: IO[bytes], name: str):
        try:
            for raw in iter(stream.readline, b""):
                text = raw.decode("utf-8", errors="replace").rstrip("\r\n")
                with self._lock:
                    self._buffer.append(LogLine(name, text))
        except (OSError, ValueError) as e:
            # Pipe closed underneath us while the process was being killed
            logger.debug(f"Stopped reading llama-server {name}: {e}")
        finally:
            stream.close()
