from __future__ import annotations

import psycopg2
from psycopg2.extras import RealDictCursor

from launchpad.db.postgres.pool import read_session, write_session
from launchpad.domain.errors import ValidationError
from launchpad.domain.models import Asset


def create_asset(asset: Asset) -> None:
    o = asset.fee_overrides
    try:
        with write_session() as conn:
            cur = conn.cursor()
            cur.execute(
                """
                INSERT INTO assets (id, name, symbol, curve_type, strength, creator, decimals,
                                    cumulative_issuance, migrated, mint,
                                    fee_total_bps, fee_creator_bps, fee_protocol_bps)
                VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s)
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
                    bool(asset.migrated),
                    asset.mint,
                    o.total_bps,
                    o.creator_bps,
                    o.protocol_bps,
                ),
            )
    except psycopg2.IntegrityError as e:
        raise ValidationError(f"asset {asset.id} already exists") from e


def get_asset(asset_id: str) -> Asset | None:
    with read_session() as conn:
        cur = conn.cursor(cursor_factory=RealDictCursor)
        cur.execute("SELECT * FROM assets WHERE id = %s", (str(asset_id),))
        row = cur.fetchone()
    return Asset.from_row(dict(row)) if row else None


def set_asset_mint(asset_id: str, mint: str) -> None:
    with write_session() as conn:
        cur = conn.cursor()
        cur.execute("UPDATE assets SET mint = %s WHERE id = %s AND mint IS NULL", (mint, str(asset_id)))


def update_issuance(asset_id: str, cumulative_issuance: int, migrated: bool) -> None:
    with write_session() as conn:
        cur = conn.cursor()
        cur.execute(
            """
            UPDATE assets
            SET cumulative_issuance = GREATEST(cumulative_issuance, %s),
                migrated = migrated OR %s
            WHERE id = %s
            """,
            (int(cumulative_issuance), bool(migrated), str(asset_id)),
        )
