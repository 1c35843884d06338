from __future__ import annotations

from threading import Lock
from typing import Callable, Mapping, Optional

import structlog
from flask import Flask, current_app
from sqlalchemy.engine import URL, Engine

from db_utils import (
    DatabaseError,
    DatabaseSettings,
    open_engine,
    probe,
    resolve_database_url,
)

logger = structlog.get_logger("calendar.backend.database")

EXTENSION_KEY = "database"


class DatabaseManager:
    """Owns the single shared engine: establish, probe, replace, close.

    The environment is re-read on every ``establish`` call.
    """

    def __init__(
        self,
        environ: Optional[Mapping[str, str]] = None,
        engine_factory: Callable[[URL], Engine] = open_engine,
    ):
        self._environ = environ
        self._engine_factory = engine_factory
        self._engine: Optional[Engine] = None
        self._generation = 0
        self._reconnect_lock = Lock()

    def init_app(self, app: Flask) -> None:
        app.extensions[EXTENSION_KEY] = self

    @property
    def engine(self) -> Optional[Engine]:
        return self._engine

    @property
    def generation(self) -> int:
        return self._generation

    def settings(self) -> DatabaseSettings:
        return DatabaseSettings.from_env(self._environ)

    def establish(self) -> Engine:
        settings = self.settings()
        url = resolve_database_url(settings)
        candidate = self._engine_factory(url)
        try:
            probe(candidate)
        except DatabaseError:
            candidate.dispose()
            raise

        previous, self._engine = self._engine, candidate
        self._generation += 1
        if previous is not None:
            previous.dispose()
        logger.info(
            "database.connected",
            target=url.render_as_string(hide_password=True),
            generation=self._generation,
        )
        return candidate

    def is_alive(self) -> bool:
        engine = self._engine
        if engine is None:
            return False
        try:
            probe(engine)
        except DatabaseError as exc:
            logger.warning("database.probe_failed", error=str(exc))
            return False
        return True

    def ensure_alive(self) -> None:
        """Probe the handle and reconnect once if it is unusable.

        Reconnects are serialised; a caller that queued behind a successful
        reconnect only re-probes the fresh handle.
        """
        observed = self._generation
        if self.is_alive():
            return
        with self._reconnect_lock:
            if self._generation != observed and self.is_alive():
                return
            logger.info("database.reconnecting")
            self.establish()

    def teardown(self) -> None:
        engine, self._engine = self._engine, None
        if engine is None:
            return
        try:
            engine.dispose()
        except Exception as exc:
            logger.error("database.close_failed", error=str(exc))
        else:
            logger.info("database.closed")


def get_database(app: Optional[Flask] = None) -> DatabaseManager:
    target = app if app is not None else current_app
    return target.extensions[EXTENSION_KEY]
