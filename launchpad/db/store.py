from __future__ import annotations

import pandas as pd

from launchpad.domain.models import Asset, Trade
from launchpad.utils import database as db


class DatabaseStore:
    """`AssetStore` backed by whichever database backend `launchpad.utils.database` selected."""

    @property
    def backend(self) -> str:
        return db.BACKEND

    def init(self) -> None:
        db.init_db()

    def get_asset(self, asset_id: str) -> Asset | None:
        return db.get_asset(asset_id)

    def create_asset(self, asset: Asset) -> None:
        db.create_asset(asset)

    def set_asset_mint(self, asset_id: str, mint: str) -> None:
        db.set_asset_mint(asset_id, mint)

    def update_issuance(self, asset_id: str, cumulative_issuance: int, migrated: bool) -> None:
        db.update_issuance(asset_id, cumulative_issuance, migrated)

    def claim_payment(self, trade: Trade) -> bool:
        return db.claim_payment(trade)

    def release_payment(self, payment_reference: str) -> None:
        db.release_payment(payment_reference)

    def complete_trade(self, payment_reference: str, issued_amount: int, tx_signature: str) -> None:
        db.complete_trade(payment_reference, issued_amount, tx_signature)

    def get_trades(self, asset_id: str, limit: int = 100) -> pd.DataFrame:
        return db.get_trades(asset_id, limit)
