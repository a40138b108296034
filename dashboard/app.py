#!/usr/bin/env python3
import atexit
import logging
from typing import Optional
from flask import Flask
from flask_cors import CORS

from config import (
    DASHBOARD_HOST,
    DASHBOARD_PORT,
    DASHBOARD_TOKEN,
    LLAMA_SERVER_EXE,
    LOG_HISTORY_LIMIT,
    LOG_LEVEL,
    LOG_POLL_INTERVAL,
    SETTINGS_FILE,
)
from errors import PersistenceError
from routes import server_bp, settings_bp, system_bp
from session import ManagerSession

logger = logging.getLogger(__name__)


def create_app(session: Optional[ManagerSession] = None) -> Flask:
    """
    Build the control panel app around one manager session.

    Args:
        session: Session to serve; a new one is created from the
            environment configuration when omitted
    """
    app = Flask(__name__)
    CORS(app)

    if session is None:
        session = ManagerSession(
            exe_path=LLAMA_SERVER_EXE,
            settings_file=SETTINGS_FILE,
            poll_interval=LOG_POLL_INTERVAL,
            history_limit=LOG_HISTORY_LIMIT,
        )
        # Closing the panel must not leave an orphaned llama-server behind
        atexit.register(session.close)

    app.config["DASHBOARD_TOKEN"] = DASHBOARD_TOKEN
    app.config["MANAGER_SESSION"] = session

    app.register_blueprint(system_bp)
    app.register_blueprint(settings_bp)
    app.register_blueprint(server_bp)

    @app.after_request
    def add_security_headers(response):
        """Add security headers to all responses"""
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["Referrer-Policy"] = "no-referrer"
        return response

    return app


if __name__ == "__main__":
    app = create_app()
    session = app.config["MANAGER_SESSION"]
    if session.settings_file_exists():
        try:
            session.load()
        except PersistenceError as e:
            logger.warning(f"Starting with default settings: {e}")

    logger.info(f"Starting llama-server manager on {DASHBOARD_HOST}:{DASHBOARD_PORT}")
    # The reloader would fork a second session with its own llama-server
    app.run(
        host=DASHBOARD_HOST,
        port=DASHBOARD_PORT,
        debug=(LOG_LEVEL == "DEBUG"),
        use_reloader=False,
    )
