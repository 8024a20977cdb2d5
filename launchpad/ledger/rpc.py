"""
JSON-RPC ledger adapter.

Implements exactly the calls in `LedgerPort` against a Solana-compatible RPC endpoint; it is not
a general client. Transport and RPC errors surface as ExternalDependencyFailure.
"""

from __future__ import annotations

import base64
import itertools
import logging
from typing import Any

import requests

from launchpad.domain.errors import ExternalDependencyFailure
from launchpad.domain.models import ConfirmedTransaction
from launchpad.utils.config_loader import LedgerConfig

logger = logging.getLogger(__name__)

_FINAL_STATES = {"confirmed", "finalized"}


def _changed_mints(meta: dict[str, Any]) -> list[str]:
    """Mints whose token balance changed on any account, from pre/postTokenBalances."""
    balances: dict[tuple[int, str], list[int]] = {}
    for slot, key in enumerate(("preTokenBalances", "postTokenBalances")):
        for entry in meta.get(key) or []:
            amount = int((entry.get("uiTokenAmount") or {}).get("amount") or 0)
            balances.setdefault((int(entry["accountIndex"]), str(entry["mint"])), [0, 0])[slot] = amount
    return sorted({mint for (_idx, mint), (pre, post) in balances.items() if pre != post})


class RpcLedger:
    def __init__(self, config: LedgerConfig, session: requests.Session | None = None):
        self.url = config.rpc_url
        self.commitment = config.commitment
        self.timeout = config.request_timeout_seconds
        self._session = session or requests.Session()
        self._ids = itertools.count(1)

    def _call(self, method: str, params: list[Any]) -> Any:
        payload = {"jsonrpc": "2.0", "id": next(self._ids), "method": method, "params": params}
        try:
            resp = self._session.post(self.url, json=payload, timeout=self.timeout)
            resp.raise_for_status()
            body = resp.json()
        except (requests.RequestException, ValueError) as e:
            logger.warning("Ledger RPC %s failed: %s", method, e)
            raise ExternalDependencyFailure(f"ledger RPC {method} failed: {type(e).__name__}") from e

        if body.get("error"):
            err = body["error"]
            msg = err.get("message") if isinstance(err, dict) else str(err)
            logger.warning("Ledger RPC %s returned error: %s", method, msg)
            raise ExternalDependencyFailure(f"ledger RPC {method} error: {msg}")
        return body.get("result")

    def get_latest_blockhash(self) -> str:
        result = self._call("getLatestBlockhash", [{"commitment": self.commitment}])
        return str(result["value"]["blockhash"])

    def get_account_data(self, address: str) -> bytes | None:
        result = self._call("getAccountInfo", [address, {"encoding": "base64", "commitment": self.commitment}])
        value = (result or {}).get("value")
        if not value:
            return None
        data = value.get("data") or ["", "base64"]
        return base64.b64decode(data[0])

    def get_minimum_balance_for_rent_exemption(self, size: int) -> int:
        return int(self._call("getMinimumBalanceForRentExemption", [int(size)]))

    def get_confirmed_transaction(self, reference: str) -> ConfirmedTransaction | None:
        result = self._call(
            "getTransaction",
            [
                reference,
                {"encoding": "json", "commitment": "confirmed", "maxSupportedTransactionVersion": 0},
            ],
        )
        if not result or not result.get("meta"):
            return None
        meta = result["meta"]
        keys = list(result["transaction"]["message"].get("accountKeys") or [])
        # Versioned transactions append lookup-table accounts after the static keys.
        loaded = meta.get("loadedAddresses") or {}
        keys.extend(loaded.get("writable") or [])
        keys.extend(loaded.get("readonly") or [])
        return ConfirmedTransaction(
            account_keys=[str(k) for k in keys],
            pre_balances=[int(b) for b in meta.get("preBalances") or []],
            post_balances=[int(b) for b in meta.get("postBalances") or []],
            failed=meta.get("err") is not None,
            token_mints=_changed_mints(meta),
        )

    def send_transaction(self, raw: bytes) -> str:
        encoded = base64.b64encode(raw).decode("ascii")
        result = self._call(
            "sendTransaction",
            [encoded, {"encoding": "base64", "preflightCommitment": self.commitment}],
        )
        return str(result)

    def is_confirmed(self, signature: str) -> bool:
        result = self._call("getSignatureStatuses", [[signature]])
        statuses = (result or {}).get("value") or [None]
        status = statuses[0]
        if not status:
            return False
        if status.get("err") is not None:
            raise ExternalDependencyFailure(f"transaction {signature} failed on the ledger")
        return status.get("confirmationStatus") in _FINAL_STATES
