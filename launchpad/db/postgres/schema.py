from __future__ import annotations

from launchpad.db.postgres.pool import database_url


def init_db() -> None:
    """Initialise/upgrade the PostgreSQL schema (idempotent)."""
    import psycopg2

    dsn = database_url()
    conn = psycopg2.connect(dsn)
    try:
        conn.autocommit = True
        cur = conn.cursor()

        cur.execute(
            """
            CREATE TABLE IF NOT EXISTS assets (
                id TEXT PRIMARY KEY,
                created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                name TEXT,
                symbol TEXT,
                curve_type TEXT NOT NULL,
                strength INTEGER NOT NULL,
                creator TEXT NOT NULL,
                decimals INTEGER NOT NULL DEFAULT 6,
                cumulative_issuance NUMERIC(20, 0) NOT NULL DEFAULT 0,
                migrated BOOLEAN NOT NULL DEFAULT FALSE,
                mint TEXT,
                fee_total_bps INTEGER,
                fee_creator_bps INTEGER,
                fee_protocol_bps INTEGER
            )
            """
        )

        # payment_reference is UNIQUE: one issuance per payment, enforced by the database.
        cur.execute(
            """
            CREATE TABLE IF NOT EXISTS trades (
                id TEXT PRIMARY KEY,
                timestamp TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                asset_id TEXT NOT NULL REFERENCES assets(id),
                side TEXT NOT NULL,
                base_amount BIGINT NOT NULL,
                counterparty TEXT NOT NULL,
                payment_reference TEXT UNIQUE,
                status TEXT NOT NULL,
                issued_amount NUMERIC(20, 0),
                tx_signature TEXT
            )
            """
        )

        # Best-effort schema upgrades for existing databases.
        # Keep these fast and idempotent.
        cur.execute("ALTER TABLE trades ADD COLUMN IF NOT EXISTS tx_signature TEXT")
        cur.execute("CREATE INDEX IF NOT EXISTS idx_trades_asset ON trades(asset_id, timestamp)")
    finally:
        conn.close()
