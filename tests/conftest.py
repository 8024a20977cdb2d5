import os
import struct
from dataclasses import replace

import pandas as pd
import pytest
from solders.hash import Hash
from solders.keypair import Keypair
from solders.pubkey import Pubkey
from solders.transaction import Transaction

# Unit tests run against in-memory fakes and SQLite, never a live ledger or PostgreSQL.
os.environ.pop("LAUNCHPAD_DATABASE_URL", None)
os.environ.pop("DATABASE_URL", None)
os.environ.setdefault("LAUNCHPAD_DISABLE_ENGINE", "1")

from launchpad.domain.errors import ExternalDependencyFailure, ValidationError
from launchpad.domain.models import Asset, ConfirmedTransaction, CurveType, TradeStatus
from launchpad.ledger import instructions as ix
from launchpad.ledger.authority import AuthorityGuard
from launchpad.ledger.mint_state import decode_mint, encode_mint
from launchpad.trading.orchestrator import TradeOrchestrator
from launchpad.utils.config_loader import EngineConfig, LedgerConfig, TreasuryConfig


class FakeLedger:
    """
    In-memory ledger. Submitted transactions are decoded and applied: mint initialisation creates
    the mint account and mint-to raises its supply.
    """

    def __init__(self):
        self.blockhash = str(Hash.new_unique())
        self.accounts: dict[str, bytes] = {}
        self.transactions: dict[str, ConfirmedTransaction] = {}
        self.sent: list[Transaction] = []
        self.confirmed: set[str] = set()
        self.auto_confirm = True
        self.fail_send = False
        self.hide_new_mints = False

    def get_latest_blockhash(self) -> str:
        return self.blockhash

    def get_account_data(self, address: str) -> bytes | None:
        return self.accounts.get(str(address))

    def get_minimum_balance_for_rent_exemption(self, size: int) -> int:
        return 1_461_600

    def get_confirmed_transaction(self, reference: str) -> ConfirmedTransaction | None:
        return self.transactions.get(reference)

    def send_transaction(self, raw: bytes) -> str:
        if self.fail_send:
            raise ExternalDependencyFailure("ledger RPC sendTransaction failed: ConnectionError")
        tx = Transaction.from_bytes(raw)
        tx.verify()
        self.sent.append(tx)
        moved = self._apply(tx)
        signature = str(tx.signatures[0])
        self.transactions[signature] = self._balance_view(tx, moved)
        if self.auto_confirm:
            self.confirmed.add(signature)
        return signature

    def is_confirmed(self, signature: str) -> bool:
        return signature in self.confirmed

    # ----- helpers -----

    def add_mint(self, mint: str, authority: str, supply: int = 0, decimals: int = 6) -> None:
        self.accounts[mint] = encode_mint(supply, decimals, authority)

    def add_payment(self, reference: str, payer: str, recipient: str, amount: int, failed: bool = False) -> None:
        self.transactions[reference] = ConfirmedTransaction(
            account_keys=[payer, recipient],
            pre_balances=[50_000_000_000, 1_000_000],
            post_balances=[50_000_000_000 - amount - 5_000, 1_000_000 + amount],
            failed=failed,
        )

    def _balance_view(self, tx: Transaction, moved: set[str]) -> ConfirmedTransaction:
        keys = [str(k) for k in tx.message.account_keys]
        pre = [10_000_000_000] * len(keys)
        post = list(pre)
        post[0] -= 5_000
        for ci in tx.message.instructions:
            data = bytes(ci.data)
            if keys[ci.program_id_index] != str(ix.SYSTEM_PROGRAM_ID) or len(data) != 12:
                continue
            if struct.unpack_from("<I", data)[0] == 2:
                (lamports,) = struct.unpack_from("<Q", data, 4)
                src, dst = bytes(ci.accounts)[:2]
                post[src] -= lamports
                post[dst] += lamports
        return ConfirmedTransaction(account_keys=keys, pre_balances=pre, post_balances=post, token_mints=sorted(moved))

    def _apply(self, tx: Transaction) -> set[str]:
        """Apply token instructions; returns the mints whose balances moved."""
        moved: set[str] = set()
        keys = [str(k) for k in tx.message.account_keys]
        for ci in tx.message.instructions:
            if keys[ci.program_id_index] != str(ix.TOKEN_PROGRAM_ID):
                continue
            data = bytes(ci.data)
            accounts = [keys[i] for i in bytes(ci.accounts)]
            if data[0] == 20 and not self.hide_new_mints:
                self.accounts[accounts[0]] = encode_mint(0, data[1], str(Pubkey.from_bytes(data[2:34])))
            elif data[0] == 7:
                mint = accounts[0]
                state = decode_mint(self.accounts[mint])
                (amount,) = struct.unpack_from("<Q", data, 1)
                self.accounts[mint] = encode_mint(state.supply + amount, state.decimals, state.mint_authority)
                moved.add(mint)
            elif data[0] == 12:
                moved.add(accounts[1])
        return moved


class FakeStore:
    def __init__(self):
        self.assets: dict[str, Asset] = {}
        self.trades: dict[str, dict] = {}
        self.fail_complete = False
        self.fail_update = False
        self.issuance_updates: list[tuple[str, int, bool]] = []

    def get_asset(self, asset_id: str) -> Asset | None:
        return self.assets.get(asset_id)

    def create_asset(self, asset: Asset) -> None:
        if asset.id in self.assets:
            raise ValidationError(f"asset {asset.id} already exists")
        self.assets[asset.id] = asset

    def set_asset_mint(self, asset_id: str, mint: str) -> None:
        a = self.assets[asset_id]
        if a.mint is None:
            self.assets[asset_id] = replace(a, mint=mint)

    def update_issuance(self, asset_id: str, cumulative_issuance: int, migrated: bool) -> None:
        if self.fail_update:
            raise ExternalDependencyFailure("database write failed: OperationalError")
        self.issuance_updates.append((asset_id, cumulative_issuance, migrated))
        a = self.assets[asset_id]
        self.assets[asset_id] = replace(
            a,
            cumulative_issuance=max(a.cumulative_issuance, cumulative_issuance),
            migrated=a.migrated or migrated,
        )

    def claim_payment(self, trade) -> bool:
        if trade.payment_reference in self.trades:
            return False
        self.trades[trade.payment_reference] = trade.to_dict()
        return True

    def release_payment(self, payment_reference: str) -> None:
        row = self.trades.get(payment_reference)
        if row and row["status"] == TradeStatus.PENDING.value:
            del self.trades[payment_reference]

    def complete_trade(self, payment_reference: str, issued_amount: int, tx_signature: str) -> None:
        if self.fail_complete:
            raise ExternalDependencyFailure("database write failed: OperationalError")
        row = self.trades[payment_reference]
        row.update(status=TradeStatus.CONFIRMED.value, issued_amount=issued_amount, tx_signature=tx_signature)

    def get_trades(self, asset_id: str, limit: int = 100) -> pd.DataFrame:
        rows = [r for r in self.trades.values() if r["asset_id"] == asset_id][:limit]
        return pd.DataFrame(rows)


@pytest.fixture
def treasury() -> Keypair:
    return Keypair()


@pytest.fixture
def creator() -> Keypair:
    return Keypair()


@pytest.fixture
def buyer() -> Keypair:
    return Keypair()


@pytest.fixture
def engine_config(treasury) -> EngineConfig:
    return EngineConfig(
        treasury=TreasuryConfig(identity=str(treasury.pubkey())),
        ledger=LedgerConfig(visibility_attempts=3, visibility_delay_seconds=0.0),
    )


@pytest.fixture
def ledger() -> FakeLedger:
    return FakeLedger()


@pytest.fixture
def store() -> FakeStore:
    return FakeStore()


@pytest.fixture
def orchestrator(engine_config, ledger, store, treasury) -> TradeOrchestrator:
    guard = AuthorityGuard(treasury, engine_config.treasury.identity)
    return TradeOrchestrator(engine_config, ledger, store, guard, sleep=lambda _s: None)


@pytest.fixture
def asset(store, creator) -> Asset:
    a = Asset(id="asset-1", curve_type=CurveType.LINEAR, strength=2, creator=str(creator.pubkey()))
    store.create_asset(a)
    return a


@pytest.fixture
def minted_asset(store, ledger, treasury, creator) -> Asset:
    mint = str(Keypair().pubkey())
    a = Asset(id="asset-2", curve_type=CurveType.LINEAR, strength=2, creator=str(creator.pubkey()), mint=mint)
    store.create_asset(a)
    ledger.add_mint(mint, str(treasury.pubkey()))
    return a
