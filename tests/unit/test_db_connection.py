"""Unit tests for the db_cursor unit-of-work helper."""

from unittest.mock import MagicMock, patch

import psycopg2
import pytest

from db import connection
from exceptions import StoreError


@pytest.fixture
def conn():
    """Mock psycopg2 connection whose cursor() works as a context manager."""
    conn = MagicMock()
    conn.cursor.return_value.__enter__.return_value = MagicMock(name="cursor")
    return conn


@pytest.fixture
def pool(conn):
    with patch.object(connection, "get_connection", return_value=conn) as get_conn, \
            patch.object(connection, "release_connection") as release:
        yield get_conn, release


def test_commit_when_requested(conn, pool):
    _, release = pool

    with connection.db_cursor("create", commit=True) as cur:
        cur.execute("SELECT 1")

    conn.commit.assert_called_once()
    conn.rollback.assert_not_called()
    release.assert_called_once_with(conn)


def test_read_does_not_commit(conn, pool):
    _, release = pool

    with connection.db_cursor("find_by_id"):
        pass

    conn.commit.assert_not_called()
    release.assert_called_once_with(conn)


def test_database_error_becomes_store_error(conn, pool):
    _, release = pool

    with pytest.raises(StoreError) as exc_info:
        with connection.db_cursor("update", commit=True):
            raise psycopg2.OperationalError("server closed the connection")

    assert exc_info.value.operation == "update"
    assert isinstance(exc_info.value.__cause__, psycopg2.OperationalError)
    conn.rollback.assert_called_once()
    conn.commit.assert_not_called()
    release.assert_called_once_with(conn)


def test_other_errors_propagate_and_release(conn, pool):
    _, release = pool

    with pytest.raises(KeyError):
        with connection.db_cursor("find_all"):
            raise KeyError("boom")

    release.assert_called_once_with(conn)


def test_uninitialized_pool_is_store_error():
    with patch.object(connection, "_pool", None), patch.object(connection, "_slots", None):
        with pytest.raises(StoreError):
            with connection.db_cursor("find_all"):
                pass


def test_get_connection_requires_init():
    with patch.object(connection, "_pool", None):
        with pytest.raises(RuntimeError):
            connection.get_connection()
