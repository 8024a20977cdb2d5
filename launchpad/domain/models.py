from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any

LAMPORTS_PER_BASE = 1_000_000_000


class CurveType(str, Enum):
    LINEAR = "linear"
    EXPONENTIAL = "exponential"
    RANDOMIZED = "randomized"

    @classmethod
    def parse(cls, value: str) -> "CurveType":
        v = str(value or "").strip().lower()
        # Legacy names kept by older asset rows.
        aliases = {"degen": "exponential", "random": "randomized"}
        return cls(aliases.get(v, v))


class Phase(str, Enum):
    PRE = "pre"
    POST = "post"


class Side(str, Enum):
    BUY = "buy"
    SELL = "sell"


class TradeStatus(str, Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"


@dataclass(frozen=True)
class FeeOverrides:
    total_bps: int | None = None
    creator_bps: int | None = None
    protocol_bps: int | None = None

    def is_empty(self) -> bool:
        return self.total_bps is None and self.creator_bps is None and self.protocol_bps is None


@dataclass(frozen=True)
class Asset:
    id: str
    curve_type: CurveType
    strength: int
    creator: str
    decimals: int = 6
    cumulative_issuance: int = 0
    migrated: bool = False
    mint: str | None = None
    name: str | None = None
    symbol: str | None = None
    fee_overrides: FeeOverrides = field(default_factory=FeeOverrides)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "curve_type": self.curve_type.value,
            "strength": int(self.strength),
            "creator": self.creator,
            "decimals": int(self.decimals),
            "cumulative_issuance": int(self.cumulative_issuance),
            "migrated": bool(self.migrated),
            "mint": self.mint,
            "name": self.name,
            "symbol": self.symbol,
            "fee_total_bps": self.fee_overrides.total_bps,
            "fee_creator_bps": self.fee_overrides.creator_bps,
            "fee_protocol_bps": self.fee_overrides.protocol_bps,
        }

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> "Asset":
        def _opt_int(v: Any) -> int | None:
            return None if v is None else int(v)

        return cls(
            id=str(row["id"]),
            curve_type=CurveType.parse(row.get("curve_type") or "linear"),
            strength=int(row.get("strength") or 2),
            creator=str(row.get("creator") or ""),
            decimals=int(row.get("decimals") if row.get("decimals") is not None else 6),
            cumulative_issuance=int(row.get("cumulative_issuance") or 0),
            migrated=bool(row.get("migrated")),
            mint=row.get("mint") or None,
            name=row.get("name"),
            symbol=row.get("symbol"),
            fee_overrides=FeeOverrides(
                total_bps=_opt_int(row.get("fee_total_bps")),
                creator_bps=_opt_int(row.get("fee_creator_bps")),
                protocol_bps=_opt_int(row.get("fee_protocol_bps")),
            ),
        )


@dataclass(frozen=True)
class Trade:
    id: str
    asset_id: str
    side: Side
    base_amount: int
    counterparty: str
    payment_reference: str | None = None
    timestamp: datetime | None = None
    status: TradeStatus = TradeStatus.PENDING
    issued_amount: int | None = None
    tx_signature: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "asset_id": self.asset_id,
            "side": self.side.value,
            "base_amount": int(self.base_amount),
            "counterparty": self.counterparty,
            "payment_reference": self.payment_reference,
            "timestamp": self.timestamp.isoformat() if self.timestamp else None,
            "status": self.status.value,
            "issued_amount": self.issued_amount,
            "tx_signature": self.tx_signature,
        }


@dataclass(frozen=True)
class FeeTransfer:
    recipient: str
    amount: int


@dataclass(frozen=True)
class FeeQuote:
    total_bps: int
    creator_bps: int
    protocol_bps: int
    cap: int
    fee_total: int
    creator_share: int
    protocol_share: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "total_bps": self.total_bps,
            "creator_bps": self.creator_bps,
            "protocol_bps": self.protocol_bps,
            "cap": self.cap,
            "fee_total": self.fee_total,
            "creator_share": self.creator_share,
            "protocol_share": self.protocol_share,
        }


@dataclass(frozen=True)
class ConfirmedTransaction:
    """Balance view of a confirmed ledger transaction."""

    account_keys: list[str]
    pre_balances: list[int]
    post_balances: list[int]
    failed: bool = False
    # Mints whose token balances the transaction changed.
    token_mints: list[str] = field(default_factory=list)

    def index_of(self, address: str) -> int | None:
        try:
            return self.account_keys.index(address)
        except ValueError:
            return None


class VerificationStatus(str, Enum):
    VERIFIED = "verified"
    NOT_FOUND = "not_found"
    FAILED = "failed"
    INSUFFICIENT = "insufficient"
    ALREADY_ISSUED = "already_issued"


@dataclass(frozen=True)
class PaymentVerification:
    status: VerificationStatus
    delta: int = 0
    required: int = 0

    @property
    def verified(self) -> bool:
        return self.status is VerificationStatus.VERIFIED


@dataclass(frozen=True)
class AssembledTransaction:
    transaction_b64: str
    blockhash: str
    fee_payer: str
    pending_signers: list[str]
    programs: list[str]

    @property
    def fully_signed(self) -> bool:
        return not self.pending_signers

    def to_dict(self) -> dict[str, Any]:
        return {
            "transaction": self.transaction_b64,
            "blockhash": self.blockhash,
            "fee_payer": self.fee_payer,
            "pending_signers": list(self.pending_signers),
        }


@dataclass(frozen=True)
class BuyBuildResult:
    artifact: AssembledTransaction
    quoted_amount: int
    fee: FeeQuote

    def to_dict(self) -> dict[str, Any]:
        return {
            "artifact": self.artifact.to_dict(),
            "quoted_amount": self.quoted_amount,
            "fee": self.fee.to_dict(),
        }


@dataclass(frozen=True)
class BuyConfirmation:
    issued_amount: int
    recorded: bool
    signature: str

    def to_dict(self) -> dict[str, Any]:
        return {"issued_amount": self.issued_amount, "recorded": self.recorded, "signature": self.signature}


@dataclass(frozen=True)
class SellBuildResult:
    artifact: AssembledTransaction
    required_issuable_amount: int
    fee: FeeQuote

    def to_dict(self) -> dict[str, Any]:
        return {
            "artifact": self.artifact.to_dict(),
            "required_issuable_amount": self.required_issuable_amount,
            "fee": self.fee.to_dict(),
        }


@dataclass(frozen=True)
class BuyPreview:
    base_amount: float
    progress: float
    phase: Phase
    quoted_amount: int
    total_cost: int
    fee: FeeQuote

    def to_dict(self) -> dict[str, Any]:
        return {
            "base_amount": self.base_amount,
            "progress": self.progress,
            "phase": self.phase.value,
            "quoted_amount": self.quoted_amount,
            "total_cost": self.total_cost,
            "fee": self.fee.to_dict(),
        }
