from __future__ import annotations

import pandas as pd

from launchpad.db.postgres.pool import read_session, safe_db_read, write_session
from launchpad.domain.models import Trade


def claim_payment(trade: Trade) -> bool:
    """Conditional insert on the unique payment_reference; False when already claimed."""
    with write_session() as conn:
        cur = conn.cursor()
        cur.execute(
            """
            INSERT INTO trades (id, asset_id, side, base_amount, counterparty, payment_reference, status)
            VALUES (%s, %s, %s, %s, %s, %s, %s)
            ON CONFLICT (payment_reference) DO NOTHING
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
    with write_session() as conn:
        cur = conn.cursor()
        cur.execute(
            "DELETE FROM trades WHERE payment_reference = %s AND status = 'pending'",
            (payment_reference,),
        )


def complete_trade(payment_reference: str, issued_amount: int, tx_signature: str) -> None:
    with write_session() as conn:
        cur = conn.cursor()
        cur.execute(
            """
            UPDATE trades SET status = 'confirmed', issued_amount = %s, tx_signature = %s
            WHERE payment_reference = %s
            """,
            (int(issued_amount), tx_signature, payment_reference),
        )


@safe_db_read(default_factory=pd.DataFrame)
def get_trades(asset_id: str, limit: int = 100) -> pd.DataFrame:
    with read_session() as conn:
        return pd.read_sql_query(
            "SELECT * FROM trades WHERE asset_id = %s ORDER BY timestamp DESC LIMIT %s",
            conn,
            params=(str(asset_id), int(limit)),
        )
