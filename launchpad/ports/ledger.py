from __future__ import annotations

from typing import Protocol

from launchpad.domain.models import ConfirmedTransaction


class LedgerPort(Protocol):
    def get_latest_blockhash(self) -> str: ...

    def get_account_data(self, address: str) -> bytes | None: ...

    def get_minimum_balance_for_rent_exemption(self, size: int) -> int: ...

    def get_confirmed_transaction(self, reference: str) -> ConfirmedTransaction | None: ...

    def send_transaction(self, raw: bytes) -> str: ...

    def is_confirmed(self, signature: str) -> bool: ...
