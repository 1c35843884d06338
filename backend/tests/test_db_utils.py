import pytest
from db_utils import (
    DatabaseOpenError,
    DatabasePingError,
    DatabaseSessionError,
    DatabaseSettings,
    probe,
    resolve_database_url,
)
from sqlalchemy import create_engine, event


def _render(url):
    return url.render_as_string(hide_password=False)


def test_settings_read_from_environment_mapping():
    settings = DatabaseSettings.from_env(
        {"DB_USER": "u", "DB_PASSWORD": "p", "DB_HOST": "localhost", "DB_NAME": "cal"}
    )
    assert settings == DatabaseSettings(
        user="u", password="p", host="localhost", name="cal", url_override=None
    )


def test_mysql_url_built_from_parts():
    settings = DatabaseSettings(user="u", password="p", host="localhost", name="cal")
    assert _render(resolve_database_url(settings)) == (
        "mysql+pymysql://u:p@localhost/cal?charset=utf8mb4"
    )


def test_host_may_carry_port():
    settings = DatabaseSettings(user="u", password="p", host="db:3307", name="cal")
    url = resolve_database_url(settings)
    assert url.host == "db"
    assert url.port == 3307


def test_credentials_are_escaped():
    settings = DatabaseSettings(user="u", password="p@ss/word", host="h", name="cal")
    url = resolve_database_url(settings)
    assert url.password == "p@ss/word"
    assert "p%40ss%2Fword" in _render(url)


def test_invalid_port_rejected():
    settings = DatabaseSettings(user="u", password="p", host="db:abc", name="cal")
    with pytest.raises(DatabaseOpenError):
        resolve_database_url(settings)


def test_database_url_override_wins(sqlite_url):
    settings = DatabaseSettings(
        user="u", password="p", host="localhost", name="cal", url_override=sqlite_url
    )
    assert resolve_database_url(settings).drivername == "sqlite"


def test_unparseable_override_rejected():
    settings = DatabaseSettings(
        user="", password="", host="", name="", url_override="not a url"
    )
    with pytest.raises(DatabaseOpenError):
        resolve_database_url(settings)


def test_probe_round_trip(sqlite_url):
    engine = create_engine(sqlite_url)
    try:
        probe(engine)
    finally:
        engine.dispose()


def test_probe_reports_missing_session(broken_engine):
    with pytest.raises(DatabaseSessionError):
        probe(broken_engine)


def test_probe_reports_failed_statement(sqlite_url):
    engine = create_engine(sqlite_url)

    @event.listens_for(engine, "before_cursor_execute")
    def _fail(conn, cursor, statement, parameters, context, executemany):
        raise RuntimeError("server has gone away")

    try:
        with pytest.raises(DatabasePingError) as excinfo:
            probe(engine)
    finally:
        engine.dispose()
    assert "failed to ping database" in str(excinfo.value)
