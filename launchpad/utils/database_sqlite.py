import logging
import os
import sqlite3
from contextlib import contextmanager
from functools import wraps
from pathlib import Path
from typing import Callable, TypeVar, ParamSpec

import pandas as pd

from launchpad.domain.errors import ExternalDependencyFailure, ValidationError
from launchpad.domain.models import Asset, Trade

logger = logging.getLogger(__name__)

# Keep the database in the project root regardless of where the process is started from.
DEFAULT_DB_PATH = str(Path(__file__).resolve().parents[2] / "launchpad.db")

# Type variables for the decorator
P = ParamSpec("P")
T = TypeVar("T")


def db_path() -> str:
    """Resolved on every call so tests and tools can point at a scratch file."""
    return os.environ.get("LAUNCHPAD_SQLITE_PATH") or DEFAULT_DB_PATH


def safe_db_read(default_factory: Callable[[], T]) -> Callable[[Callable[P, T]], Callable[P, T]]:
    """
    Decorator for history/reporting reads that returns a default value on error.
    Keeps the API responsive when the database is locked or unavailable.

    Engine reads (assets, claims) do not use this: their failures must reach the caller.
    """
    def decorator(func: Callable[P, T]) -> Callable[P, T]:
        @wraps(func)
        def wrapper(*args: P.args, **kwargs: P.kwargs) -> T:
            try:
                return func(*args, **kwargs)
            except sqlite3.OperationalError as e:
                logger.warning(f"Database read failed ({func.__name__}): {e}")
                return default_factory()
            except (sqlite3.DatabaseError, pd.errors.DatabaseError) as e:
                # pandas wraps driver errors raised inside read_sql_query.
                logger.error(f"Database error ({func.__name__}): {e}")
                return default_factory()
        return wrapper
    return decorator


def _connect_fresh() -> sqlite3.Connection:
    """
    Create a fresh connection (for init_db and one-time operations).
    The caller is responsible for closing this connection.
    """
    return sqlite3.connect(db_path(), timeout=30)


def _connect_ro() -> sqlite3.Connection:
    """
    Read connection with settings that minimise lock contention.
    """
    conn = sqlite3.connect(db_path(), timeout=2, isolation_level=None)  # autocommit mode
    conn.execute("PRAGMA query_only = 1")  # Prevent accidental writes
    return conn


def ping() -> bool:
    conn = _connect_ro()
    try:
        return conn.execute("SELECT 1").fetchone() is not None
    finally:
        conn.close()


@contextmanager
def _write_conn():
    """One connection per write; commit on success, roll back on any error."""
    try:
        conn = sqlite3.connect(db_path(), timeout=10)
    except sqlite3.Error as e:
        raise ExternalDependencyFailure(f"database unavailable: {e}") from e
    try:
        conn.execute("PRAGMA busy_timeout=10000")
        yield conn
        conn.commit()
    except sqlite3.IntegrityError:
        conn.rollback()
        raise
    except sqlite3.Error as e:
        conn.rollback()
        raise ExternalDependencyFailure(f"database write failed: {e}") from e
    finally:
        conn.close()


def init_db() -> None:
    """Initialise/upgrade the SQLite database schema (idempotent)."""
    conn = _connect_fresh()
    try:
        cursor = conn.cursor()

        cursor.execute("PRAGMA journal_mode=WAL;")
        cursor.execute("PRAGMA synchronous=NORMAL;")

        cursor.execute(
            """
            CREATE TABLE IF NOT EXISTS assets (
                id TEXT PRIMARY KEY,
                created_at DATETIME DEFAULT CURRENT_TIMESTAMP,
                name TEXT,
                symbol TEXT,
                curve_type TEXT NOT NULL,
                strength INTEGER NOT NULL,
                creator TEXT NOT NULL,
                decimals INTEGER NOT NULL DEFAULT 6,
                cumulative_issuance INTEGER NOT NULL DEFAULT 0,
                migrated INTEGER NOT NULL DEFAULT 0,
                mint TEXT,
                fee_total_bps INTEGER,
                fee_creator_bps INTEGER,
                fee_protocol_bps INTEGER
            )
            """
        )

        # payment_reference is UNIQUE: claiming a payment is a conditional insert, so a payment
        # can back at most one issuance.
        cursor.execute(
            """
            CREATE TABLE IF NOT EXISTS trades (
                id TEXT PRIMARY KEY,
                timestamp DATETIME DEFAULT CURRENT_TIMESTAMP,
                asset_id TEXT NOT NULL,
                side TEXT NOT NULL,
                base_amount INTEGER NOT NULL,
                counterparty TEXT NOT NULL,
                payment_reference TEXT UNIQUE,
                status TEXT NOT NULL,
                issued_amount INTEGER,
                tx_signature TEXT
            )
            """
        )
        cursor.execute("CREATE INDEX IF NOT EXISTS idx_trades_asset ON trades(asset_id, timestamp)")
        conn.commit()
    finally:
        conn.close()


def create_asset(asset: Asset) -> None:
    o = asset.fee_overrides
    try:
        with _write_conn() as conn:
            conn.execute(
                """
                INSERT INTO assets (id, name, symbol, curve_type, strength, creator, decimals,
                                    cumulative_issuance, migrated, mint,
                                    fee_total_bps, fee_creator_bps, fee_protocol_bps)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    asset.id,
                    asset.name,
                    asset.symbol,
                    asset.curve_type.value,
                    int(asset.strength),
                    asset.creator,
                    int(asset.decimals),
                    int(asset.cumulative_issuance),
                    1 if asset.migrated else 0,
                    asset.mint,
                    o.total_bps,
                    o.creator_bps,
                    o.protocol_bps,
                ),
            )
    except sqlite3.IntegrityError as e:
        raise ValidationError(f"asset {asset.id} already exists") from e


def get_asset(asset_id: str) -> Asset | None:
    try:
        conn = _connect_ro()
    except sqlite3.Error as e:
        raise ExternalDependencyFailure(f"database unavailable: {e}") from e
    try:
        conn.row_factory = sqlite3.Row
        row = conn.execute("SELECT * FROM assets WHERE id = ?", (str(asset_id),)).fetchone()
    except sqlite3.Error as e:
        raise ExternalDependencyFailure(f"asset lookup failed: {e}") from e
    finally:
        conn.close()
    return Asset.from_row(dict(row)) if row is not None else None


def set_asset_mint(asset_id: str, mint: str) -> None:
    with _write_conn() as conn:
        conn.execute("UPDATE assets SET mint = ? WHERE id = ? AND mint IS NULL", (mint, str(asset_id)))


def update_issuance(asset_id: str, cumulative_issuance: int, migrated: bool) -> None:
    # Monotonic counter and one-way migration flag, enforced in SQL.
    with _write_conn() as conn:
        conn.execute(
            """
            UPDATE assets
            SET cumulative_issuance = MAX(cumulative_issuance, ?),
                migrated = CASE WHEN migrated = 1 OR ? = 1 THEN 1 ELSE 0 END
            WHERE id = ?
            """,
            (int(cumulative_issuance), 1 if migrated else 0, str(asset_id)),
        )


def claim_payment(trade: Trade) -> bool:
    """Insert a pending trade for the payment; False if the reference was already claimed."""
    with _write_conn() as conn:
        cur = conn.execute(
            """
            INSERT OR IGNORE INTO trades (id, asset_id, side, base_amount, counterparty, payment_reference, status)
            VALUES (?, ?, ?, ?, ?, ?, ?)
            """,
            (
                trade.id,
                trade.asset_id,
                trade.side.value,
                int(trade.base_amount),
                trade.counterparty,
                trade.payment_reference,
                trade.status.value,
            ),
        )
        return cur.rowcount == 1


def release_payment(payment_reference: str) -> None:
    with _write_conn() as conn:
        conn.execute(
            "DELETE FROM trades WHERE payment_reference = ? AND status = 'pending'",
            (payment_reference,),
        )


def complete_trade(payment_reference: str, issued_amount: int, tx_signature: str) -> None:
    with _write_conn() as conn:
        conn.execute(
            """
            UPDATE trades SET status = 'confirmed', issued_amount = ?, tx_signature = ?
            WHERE payment_reference = ?
            """,
            (int(issued_amount), tx_signature, payment_reference),
        )


@safe_db_read(default_factory=pd.DataFrame)
def get_trades(asset_id: str, limit: int = 100) -> pd.DataFrame:
    conn = _connect_ro()
    try:
        df = pd.read_sql_query(
            "SELECT * FROM trades WHERE asset_id = ? ORDER BY timestamp DESC LIMIT ?",
            conn,
            params=(str(asset_id), int(limit)),
        )
        return df
    finally:
        conn.close()
