from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Mapping, Optional, Tuple

from sqlalchemy import create_engine, text
from sqlalchemy.engine import URL, Engine, make_url
from sqlalchemy.exc import ArgumentError

DEFAULT_DRIVER = "mysql+pymysql"
# utf8mb4 covers the full multibyte range; PyMySQL parses DATE/DATETIME
# columns into naive datetimes in the server's local time.
DEFAULT_QUERY = {"charset": "utf8mb4"}


class DatabaseError(Exception):
    """Base error for connection management failures."""


class DatabaseOpenError(DatabaseError):
    """Raised when an engine cannot be built for the configured target."""


class DatabaseSessionError(DatabaseError):
    """Raised when the engine cannot hand out a connection."""


class DatabasePingError(DatabaseError):
    """Raised when the liveness probe statement fails."""


@dataclass(frozen=True)
class DatabaseSettings:
    user: str
    password: str
    host: str
    name: str
    url_override: Optional[str] = None

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "DatabaseSettings":
        env = os.environ if environ is None else environ
        return cls(
            user=env.get("DB_USER", ""),
            password=env.get("DB_PASSWORD", ""),
            host=env.get("DB_HOST", ""),
            name=env.get("DB_NAME", ""),
            url_override=(env.get("DATABASE_URL") or "").strip() or None,
        )


def _split_host(host: str) -> Tuple[Optional[str], Optional[int]]:
    host = host.strip()
    if not host:
        return None, None
    if host.count(":") != 1:
        return host, None
    name, _, port = host.partition(":")
    try:
        return name or None, int(port)
    except ValueError:
        raise DatabaseOpenError(f"Invalid port in DB_HOST: {host!r}")


def resolve_database_url(settings: DatabaseSettings) -> URL:
    """Return the connection target for ``settings``.

    ``DATABASE_URL`` wins when present; otherwise a MySQL URL is assembled
    from the individual ``DB_*`` values.
    """
    if settings.url_override:
        try:
            return make_url(settings.url_override)
        except ArgumentError as exc:
            raise DatabaseOpenError(f"failed to parse DATABASE_URL: {exc}") from exc

    host, port = _split_host(settings.host)
    return URL.create(
        DEFAULT_DRIVER,
        username=settings.user or None,
        password=settings.password or None,
        host=host,
        port=port,
        database=settings.name or None,
        query=DEFAULT_QUERY,
    )


def open_engine(url: URL) -> Engine:
    try:
        return create_engine(url)
    except Exception as exc:
        raise DatabaseOpenError(f"failed to connect to database: {exc}") from exc


def probe(engine: Engine) -> None:
    """Execute a lightweight round trip on a fresh connection."""
    try:
        connection = engine.connect()
    except Exception as exc:
        raise DatabaseSessionError(f"failed to get database connection: {exc}") from exc
    try:
        connection.execute(text("SELECT 1"))
    except Exception as exc:
        raise DatabasePingError(f"failed to ping database: {exc}") from exc
    finally:
        connection.close()
