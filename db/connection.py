"""
db/connection.py
----------------
Manages the PostgreSQL connection pool.
Uses psycopg2's ThreadedConnectionPool so that the request worker threads
can share it. A bounded semaphore makes callers wait for a free connection
instead of failing when all of them are checked out.
"""

import threading
from contextlib import contextmanager
from typing import Iterator

import psycopg2
from psycopg2 import pool

from config import DATABASE_URL, DB_CONNECT_TIMEOUT, DB_POOL_MAX, DB_POOL_MIN
from exceptions import StoreError
from utils.logger import get_logger

logger = get_logger(__name__)

_pool: pool.ThreadedConnectionPool | None = None
_slots: threading.BoundedSemaphore | None = None


def init_pool(min_conn: int = DB_POOL_MIN, max_conn: int = DB_POOL_MAX) -> None:
    """
    Initialize the database connection pool.

    Args:
        min_conn: Minimum number of connections to keep open.
        max_conn: Maximum number of connections allowed.

    Raises:
        psycopg2.OperationalError: If the database is unreachable.
    """
    global _pool, _slots
    if _pool is not None:
        return
    try:
        _pool = pool.ThreadedConnectionPool(
            min_conn, max_conn, DATABASE_URL, connect_timeout=DB_CONNECT_TIMEOUT
        )
        _slots = threading.BoundedSemaphore(max_conn)
        logger.info(f"Database connection pool initialized (max {max_conn} connections).")
    except psycopg2.OperationalError as e:
        logger.error(f"Failed to initialize database pool: {e}")
        raise


def get_connection():
    """
    Get a connection from the pool, waiting for a free slot if needed.

    Returns:
        A psycopg2 connection object.

    Raises:
        RuntimeError: If the pool has not been initialized.
    """
    if _pool is None or _slots is None:
        raise RuntimeError("Database pool not initialized. Call init_pool() first.")
    _slots.acquire()
    try:
        return _pool.getconn()
    except Exception:
        _slots.release()
        raise


def release_connection(conn) -> None:
    """
    Return a connection back to the pool.

    Args:
        conn: The psycopg2 connection to release.
    """
    if _pool is not None:
        _pool.putconn(conn)
        _slots.release()


@contextmanager
def db_cursor(operation: str, commit: bool = False) -> Iterator:
    """
    Check out a connection for one logical operation and yield a cursor.

    The connection is committed when ``commit`` is set, rolled back on any
    database error, and released on every exit path. psycopg2 errors are
    re-raised as StoreError.

    Args:
        operation: Short name of the operation, used in logs and errors.
        commit: Whether the statement(s) must be committed.
    """
    try:
        conn = get_connection()
    except (RuntimeError, psycopg2.Error) as e:
        logger.error(f"No database connection available for '{operation}': {e}")
        raise StoreError(operation) from e

    try:
        with conn.cursor() as cur:
            yield cur
        if commit:
            conn.commit()
    except psycopg2.Error as e:
        conn.rollback()
        logger.error(f"Database operation '{operation}' failed: {e}")
        raise StoreError(operation) from e
    finally:
        release_connection(conn)


def close_pool() -> None:
    """Close all connections in the pool."""
    global _pool, _slots
    if _pool is not None:
        _pool.closeall()
        _pool = None
        _slots = None
        logger.info("Database connection pool closed.")
