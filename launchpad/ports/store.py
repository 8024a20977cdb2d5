from __future__ import annotations

from typing import Protocol

import pandas as pd

from launchpad.domain.models import Asset, Trade


class AssetStore(Protocol):
    def get_asset(self, asset_id: str) -> Asset | None: ...

    def create_asset(self, asset: Asset) -> None: ...

    def set_asset_mint(self, asset_id: str, mint: str) -> None: ...

    def update_issuance(self, asset_id: str, cumulative_issuance: int, migrated: bool) -> None: ...

    def claim_payment(self, trade: Trade) -> bool: ...

    def release_payment(self, payment_reference: str) -> None: ...

    def complete_trade(self, payment_reference: str, issued_amount: int, tx_signature: str) -> None: ...

    def get_trades(self, asset_id: str, limit: int = 100) -> pd.DataFrame: ...
