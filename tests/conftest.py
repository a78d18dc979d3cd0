"""pytest configuration and fixtures."""

import os

import pytest

from pgexec import Connection, PgConnectionError, connect

from fakes import FakeSession


# Database configuration for integration tests
PG_USER = os.getenv("PG_USER", "postgres")
PG_PASS = os.getenv("PG_PASS", "postgres")
PG_HOST = os.getenv("PG_HOST", "localhost")
PG_PORT = os.getenv("PG_PORT", "5432")
PG_DB = os.getenv("PG_DB", "postgres")
PG_DSN = os.getenv("PG_DSN", f"postgres://{PG_USER}:{PG_PASS}@{PG_HOST}:{PG_PORT}/{PG_DB}")

TEST_PARAMS = {"host": "db.test", "port": "5432", "user": "tester", "dbname": "testdb"}


@pytest.fixture
def session() -> FakeSession:
    """Scripted protocol session."""
    return FakeSession()


@pytest.fixture
def conn(session: FakeSession):
    """Connected handle driving the scripted session."""
    handle = Connection(TEST_PARAMS, session=session).connect()
    yield handle
    handle.close()


@pytest.fixture(scope="session")
def pg_dsn() -> str:
    """DSN of a reachable PostgreSQL server; skips the test otherwise."""
    try:
        probe = connect(PG_DSN, connect_timeout=3)
    except PgConnectionError as e:
        pytest.skip(f"PostgreSQL not available at {PG_HOST}:{PG_PORT}: {e}")
    probe.close()
    return PG_DSN


@pytest.fixture
def live(pg_dsn: str):
    """Connection to the live test server."""
    with connect(pg_dsn) as handle:
        yield handle
