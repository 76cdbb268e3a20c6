"""Flask Application Factory for the order board."""

import asyncio
import logging
import threading
from typing import Optional

from flask import Flask

from app.api import api_bp
from config.settings import Settings, get_settings
from services.dashboard import DashboardSession

logger = logging.getLogger(__name__)

EXTENSION = "order_board"


class SessionRunner:
    """
    Runs dashboard coroutines on one dedicated event loop.

    Flask handlers are synchronous; every request drives the loop with
    ``run_until_complete``. Requests are serialized because a loop cannot be
    re-entered.
    """

    def __init__(self, session: DashboardSession, loop: Optional[asyncio.AbstractEventLoop] = None):
        self.session = session
        self.loop = loop or asyncio.new_event_loop()
        self._lock = threading.Lock()

    def run(self, coro):
        with self._lock:
            return self.loop.run_until_complete(coro)

    def close(self) -> None:
        self.run(self.session.dispose())
        self.loop.close()


def create_app(
    session: Optional[DashboardSession] = None,
    *,
    settings: Optional[Settings] = None,
    loop: Optional[asyncio.AbstractEventLoop] = None,
) -> Flask:
    """
    Create and configure the Flask application.

    Args:
        session: Dashboard session (default: built from settings)
        settings: Application settings
        loop: Event loop for the session (default: a new one)

    Returns:
        Configured Flask App
    """
    settings = settings or get_settings()
    app = Flask(__name__)
    app.config["ENVIRONMENT"] = settings.environment
    app.json.sort_keys = False

    runner = SessionRunner(session or DashboardSession(settings=settings), loop)
    runner.run(runner.session.initialize())
    app.extensions[EXTENSION] = runner

    app.register_blueprint(api_bp, url_prefix="/api")

    @app.route("/health")
    def health():
        session = runner.session
        return {
            "status": "degraded" if session.degraded else "ok",
            "service": "order-board",
            "remote": not session.degraded,
            "last_error": session.last_error,
        }

    logger.info("[App] Order board ready (degraded=%s)", runner.session.degraded)
    return app


def close_app(app: Flask) -> None:
    """Dispose the dashboard session and close its event loop."""
    runner = app.extensions.pop(EXTENSION, None)
    if runner is not None:
        runner.close()
