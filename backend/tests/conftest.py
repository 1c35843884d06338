import pytest
from app import create_app
from extensions import DatabaseManager
from sqlalchemy import create_engine


@pytest.fixture()
def sqlite_url(tmp_path):
    return f"sqlite:///{tmp_path / 'calendar.db'}"


@pytest.fixture()
def broken_url(tmp_path):
    # SQLite cannot create a file inside a directory that does not exist.
    return f"sqlite:///{tmp_path / 'missing' / 'calendar.db'}"


@pytest.fixture()
def environ(sqlite_url):
    return {"DATABASE_URL": sqlite_url}


@pytest.fixture()
def database(environ):
    manager = DatabaseManager(environ=environ)
    yield manager
    manager.teardown()


@pytest.fixture()
def broken_engine(broken_url):
    engine = create_engine(broken_url)
    yield engine
    engine.dispose()


@pytest.fixture()
def app(database):
    database.establish()
    return create_app(database, {"TESTING": True})


@pytest.fixture()
def client(app):
    with app.test_client() as client:
        yield client
