"""Process lifecycle: connect, serve on a background thread, stop on signal.

The main thread only ever blocks on the shutdown event. Teardown order is
fixed: the database handle is closed first, then the listener is stopped.
"""

from __future__ import annotations

import enum
import os
import signal
import threading
from typing import Dict, Optional

import structlog
from flask import Flask
from werkzeug.serving import BaseWSGIServer, make_server

from app import create_app
from db_utils import DatabaseError
from extensions import DatabaseManager

logger = structlog.get_logger("calendar.backend.lifecycle")

DEFAULT_HOST = "0.0.0.0"
DEFAULT_PORT = 3000
SHUTDOWN_SIGNALS = (signal.SIGINT, signal.SIGTERM)


class LifecycleState(enum.Enum):
    STARTING = "starting"
    RUNNING = "running"
    SHUTTING_DOWN = "shutting_down"
    STOPPED = "stopped"


def resolve_bind_address(
    host: Optional[str] = None, port: Optional[int] = None
) -> tuple[str, int]:
    if host is None:
        host = os.environ.get("CALENDAR_HOST", DEFAULT_HOST)
    if port is None:
        port = int(os.environ.get("CALENDAR_PORT", str(DEFAULT_PORT)))
    return host, port


class ServiceRunner:
    def __init__(
        self,
        app: Flask,
        database: DatabaseManager,
        host: str = DEFAULT_HOST,
        port: int = DEFAULT_PORT,
        install_signal_handlers: bool = True,
    ):
        self.app = app
        self.database = database
        self.host = host
        self.port = port
        self.install_signal_handlers = install_signal_handlers
        self.state = LifecycleState.STARTING
        self.server: Optional[BaseWSGIServer] = None
        self._shutdown_event = threading.Event()
        self._running_event = threading.Event()
        self._listener: Optional[threading.Thread] = None
        self._previous_handlers: Dict[int, object] = {}

    @property
    def bound_port(self) -> Optional[int]:
        return self.server.server_port if self.server is not None else None

    def stop(self) -> None:
        self._shutdown_event.set()

    def wait_until_running(self, timeout: Optional[float] = None) -> bool:
        return self._running_event.wait(timeout)

    def _handle_signal(self, signum, frame) -> None:
        logger.info("server.signal_received", signal=signal.Signals(signum).name)
        self.stop()

    def _install_handlers(self) -> None:
        if not self.install_signal_handlers:
            return
        if threading.current_thread() is not threading.main_thread():
            return
        for signum in SHUTDOWN_SIGNALS:
            self._previous_handlers[signum] = signal.signal(signum, self._handle_signal)

    def _restore_handlers(self) -> None:
        for signum, handler in self._previous_handlers.items():
            signal.signal(signum, handler)
        self._previous_handlers.clear()

    def _connect(self) -> None:
        try:
            self.database.establish()
        except DatabaseError as exc:
            logger.critical("startup.database_failed", error=str(exc))
            self.state = LifecycleState.STOPPED
            raise SystemExit(1) from exc

    def _start_listener(self) -> None:
        self.server = make_server(self.host, self.port, self.app, threaded=True)
        self._listener = threading.Thread(
            target=self.server.serve_forever, name="calendar-http", daemon=True
        )
        self._listener.start()

    def _shutdown(self) -> None:
        self.state = LifecycleState.SHUTTING_DOWN
        logger.info("server.shutting_down")
        try:
            self.database.teardown()
        finally:
            if self.server is not None:
                self.server.shutdown()
                self.server.server_close()
            if self._listener is not None:
                self._listener.join()
            self._restore_handlers()
            self.state = LifecycleState.STOPPED

    def run(self) -> int:
        self._connect()
        self._install_handlers()
        try:
            self._start_listener()
            self.state = LifecycleState.RUNNING
            self._running_event.set()
            logger.info("server.started", host=self.host, port=self.bound_port)
            self._shutdown_event.wait()
        finally:
            self._shutdown()
        return 0


def run_service(host: Optional[str] = None, port: Optional[int] = None) -> int:
    database = DatabaseManager()
    app = create_app(database)
    bind_host, bind_port = resolve_bind_address(host, port)
    return ServiceRunner(app, database, host=bind_host, port=bind_port).run()
