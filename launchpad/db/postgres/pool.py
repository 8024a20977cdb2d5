"""
PostgreSQL connection handling for the asset store.

Request threads borrow connections from one process-wide ThreadedConnectionPool through two
context managers: `read_session()` (read-only, autocommit) and `write_session()` (one
transaction, committed on success). Driver errors surface as ExternalDependencyFailure, except
IntegrityError which repositories translate themselves.
"""

from __future__ import annotations

import logging
import os
import threading
from contextlib import contextmanager
from functools import wraps
from typing import Callable, Iterator, ParamSpec, TypeVar

import pandas as pd
import psycopg2
from psycopg2.extensions import make_dsn, parse_dsn
from psycopg2.pool import ThreadedConnectionPool

from launchpad.domain.errors import ExternalDependencyFailure

logger = logging.getLogger(__name__)

P = ParamSpec("P")
T = TypeVar("T")

CONNECT_TIMEOUT_SECONDS = int(os.environ.get("LAUNCHPAD_PG_CONNECT_TIMEOUT_SECONDS", "3"))

_lock = threading.Lock()
_pool: ThreadedConnectionPool | None = None


def database_url() -> str:
    """DSN from LAUNCHPAD_DATABASE_URL (or DATABASE_URL), with a connect timeout added if absent."""
    raw = (os.environ.get("LAUNCHPAD_DATABASE_URL") or os.environ.get("DATABASE_URL") or "").strip()
    if not raw:
        raise ExternalDependencyFailure("PostgreSQL selected but LAUNCHPAD_DATABASE_URL is not set")
    try:
        if "connect_timeout" in parse_dsn(raw):
            return raw
        return make_dsn(raw, connect_timeout=CONNECT_TIMEOUT_SECONDS)
    except psycopg2.ProgrammingError as e:
        raise ExternalDependencyFailure("LAUNCHPAD_DATABASE_URL is not a valid PostgreSQL DSN") from e


def _shared_pool() -> ThreadedConnectionPool:
    global _pool
    with _lock:
        if _pool is None:
            lo = int(os.environ.get("LAUNCHPAD_PG_POOL_MIN", "1"))
            hi = int(os.environ.get("LAUNCHPAD_PG_POOL_MAX", "10"))
            try:
                _pool = ThreadedConnectionPool(lo, hi, dsn=database_url())
            except psycopg2.Error as e:
                raise ExternalDependencyFailure(f"database unavailable: {type(e).__name__}") from e
            logger.info("PostgreSQL pool ready (min=%d, max=%d)", lo, hi)
        return _pool


@contextmanager
def read_session() -> Iterator["psycopg2.extensions.connection"]:
    pool = _shared_pool()
    conn = pool.getconn()
    try:
        conn.rollback()
        conn.set_session(readonly=True, autocommit=True)
        yield conn
    except psycopg2.Error as e:
        raise ExternalDependencyFailure(f"database read failed: {type(e).__name__}") from e
    finally:
        try:
            conn.set_session(readonly=False, autocommit=False)
        finally:
            pool.putconn(conn)


@contextmanager
def write_session() -> Iterator["psycopg2.extensions.connection"]:
    pool = _shared_pool()
    conn = pool.getconn()
    try:
        conn.rollback()
        conn.set_session(readonly=False, autocommit=False)
        yield conn
        conn.commit()
    except psycopg2.IntegrityError:
        conn.rollback()
        raise
    except psycopg2.Error as e:
        conn.rollback()
        raise ExternalDependencyFailure(f"database write failed: {type(e).__name__}") from e
    except BaseException:
        conn.rollback()
        raise
    finally:
        pool.putconn(conn)


def ping() -> bool:
    with read_session() as conn:
        cur = conn.cursor()
        cur.execute("SELECT 1")
        return cur.fetchone() is not None


def safe_db_read(default_factory: Callable[[], T]) -> Callable[[Callable[P, T]], Callable[P, T]]:
    """For history reads only: a database outage yields `default_factory()` and a warning."""

    def decorator(func: Callable[P, T]) -> Callable[P, T]:
        @wraps(func)
        def wrapper(*args: P.args, **kwargs: P.kwargs) -> T:
            try:
                return func(*args, **kwargs)
            except (psycopg2.Error, pd.errors.DatabaseError, ExternalDependencyFailure) as e:
                logger.warning(f"History read {func.__name__} failed: {e}")
                return default_factory()

        return wrapper

    return decorator
