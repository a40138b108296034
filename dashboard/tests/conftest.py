import os
import sys
from unittest.mock import MagicMock
import pytest

# Add dashboard directory to path so imports work
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

TEST_TOKEN = "test-token-for-manager"

# config reads these at import time
os.environ["DASHBOARD_TOKEN"] = TEST_TOKEN
os.environ["LOG_FILE"] = ""

from server_process import ProcessHandle, ServerProcess
from server_settings import ServerSettings
from session import ManagerSession


@pytest.fixture
def settings():
    """Default settings with a model path filled in."""
    s = ServerSettings()
    s.model_path = "/models/test.gguf"
    return s


@pytest.fixture
def fake_process():
    """A ServerProcess stand-in that never spawns anything."""
    proc = MagicMock(spec=ServerProcess)
    proc.is_running = False
    proc.returncode = None
    proc.handle = None
    proc.drain.return_value = []

    def launch(exe, args):
        proc.is_running = True
        proc.handle = ProcessHandle(
            pid=4242, executable=exe, args=list(args), started_at="2026-01-01T00:00:00Z"
        )
        return proc.handle

    def stop():
        proc.is_running = False
        return proc.returncode

    proc.launch.side_effect = launch
    proc.stop.side_effect = stop
    return proc


@pytest.fixture
def session(fake_process, tmp_path):
    """Session around the fake process, saving into a temp directory."""
    s = ManagerSession(
        process=fake_process,
        settings_file=str(tmp_path / "llama-config.json"),
        poll_interval=0.01,
    )
    yield s
    s.close()


@pytest.fixture
def client(session):
    from app import create_app

    app = create_app(session)
    app.config["TESTING"] = True
    app.config["DASHBOARD_TOKEN"] = TEST_TOKEN
    return app.test_client()


@pytest.fixture
def auth_headers():
    return {"Authorization": f"Bearer {TEST_TOKEN}"}
