"""
Atomic multi-step transfer assembly.

A `TransferPlan` lists steps in a fixed category order:

    priority hints -> ensure holding accounts -> primary transfer -> fee transfers
    -> issuance / asset transfer -> correlation tag

Later steps may depend on accounts created by earlier ones (a holding account must exist before
it can receive issuance), so the assembler never reorders; it rejects plans that are out of order.

The result is a serialized, partially-authorized wire transaction: every platform-held role is
signed here and at most one role (the fee payer) is left for the end user. Submission is the
caller's job.
"""

from __future__ import annotations

import base64
import logging
from dataclasses import dataclass
from enum import IntEnum
from typing import Sequence

from solders.hash import Hash
from solders.instruction import Instruction
from solders.keypair import Keypair
from solders.message import Message
from solders.transaction import Transaction

from launchpad.domain.errors import NotReady, ValidationError
from launchpad.domain.models import AssembledTransaction
from launchpad.ledger import instructions as ix
from launchpad.ports.ledger import LedgerPort

logger = logging.getLogger(__name__)


class StepKind(IntEnum):
    PRIORITY = 0
    ENSURE_HOLDING = 1
    PRIMARY = 2
    FEE = 3
    SETTLEMENT = 4
    TAG = 5


@dataclass(frozen=True)
class PriorityHint:
    unit_limit: int = 0
    unit_price: int = 0

    kind = StepKind.PRIORITY

    def mints(self) -> tuple[str, ...]:
        return ()

    def instructions(self) -> list[Instruction]:
        return ix.priority_instructions(self.unit_limit, self.unit_price)


@dataclass(frozen=True)
class EnsureHolding:
    """Create the (owner, mint) holding account if it does not exist yet (idempotent)."""

    payer: str
    owner: str
    mint: str

    kind = StepKind.ENSURE_HOLDING

    def mints(self) -> tuple[str, ...]:
        return (self.mint,)

    def instructions(self) -> list[Instruction]:
        return [
            ix.create_holding_idempotent(
                ix.as_pubkey(self.payer, name="payer"),
                ix.as_pubkey(self.owner, name="owner"),
                ix.as_pubkey(self.mint, name="mint"),
            )
        ]


@dataclass(frozen=True)
class NativeTransfer:
    source: str
    destination: str
    lamports: int
    kind: StepKind = StepKind.PRIMARY

    def mints(self) -> tuple[str, ...]:
        return ()

    def instructions(self) -> list[Instruction]:
        if self.lamports <= 0:
            raise ValidationError("transfer amount must be > 0")
        return [
            ix.native_transfer(
                ix.as_pubkey(self.source, name="source"),
                ix.as_pubkey(self.destination, name="destination"),
                self.lamports,
            )
        ]


@dataclass(frozen=True)
class Issue:
    """Mint `amount` raw units into the owner's holding account."""

    mint: str
    owner: str
    authority: str
    amount: int

    kind = StepKind.SETTLEMENT

    def mints(self) -> tuple[str, ...]:
        return (self.mint,)

    def instructions(self) -> list[Instruction]:
        if self.amount <= 0:
            raise ValidationError("issuance amount must be > 0")
        mint = ix.as_pubkey(self.mint, name="mint")
        return [
            ix.mint_to(
                mint,
                ix.holding_address(self.owner, mint),
                ix.as_pubkey(self.authority, name="authority"),
                self.amount,
            )
        ]


@dataclass(frozen=True)
class AssetTransfer:
    """Move `amount` raw units between two owners' holding accounts."""

    mint: str
    source_owner: str
    destination_owner: str
    amount: int
    decimals: int

    kind = StepKind.SETTLEMENT

    def mints(self) -> tuple[str, ...]:
        return (self.mint,)

    def instructions(self) -> list[Instruction]:
        if self.amount <= 0:
            raise ValidationError("asset transfer amount must be > 0")
        mint = ix.as_pubkey(self.mint, name="mint")
        return [
            ix.transfer_checked(
                ix.holding_address(self.source_owner, mint),
                mint,
                ix.holding_address(self.destination_owner, mint),
                ix.as_pubkey(self.source_owner, name="source owner"),
                self.amount,
                self.decimals,
            )
        ]


@dataclass(frozen=True)
class CorrelationTag:
    text: str

    kind = StepKind.TAG

    def mints(self) -> tuple[str, ...]:
        return ()

    def instructions(self) -> list[Instruction]:
        return [ix.memo(self.text)]


Step = PriorityHint | EnsureHolding | NativeTransfer | Issue | AssetTransfer | CorrelationTag


@dataclass(frozen=True)
class TransferPlan:
    fee_payer: str
    steps: tuple[Step, ...]


class TransactionAssembler:
    def __init__(self, ledger: LedgerPort):
        self.ledger = ledger

    @staticmethod
    def check_order(steps: Sequence[Step]) -> None:
        last = StepKind.PRIORITY
        for i, step in enumerate(steps):
            if step.kind < last:
                raise ValidationError(
                    f"step {i} ({type(step).__name__}) is out of order: {step.kind.name} after {last.name}"
                )
            last = step.kind

    def _resolve_mints(self, steps: Sequence[Step]) -> None:
        seen: set[str] = set()
        for step in steps:
            for mint in step.mints():
                if mint in seen:
                    continue
                if self.ledger.get_account_data(mint) is None:
                    raise NotReady(f"mint {mint} is not visible on the ledger yet")
                seen.add(mint)

    def build(self, plan: TransferPlan, platform_signers: Sequence[Keypair]) -> AssembledTransaction:
        if not plan.steps:
            raise ValidationError("transfer plan has no steps")
        self.check_order(plan.steps)
        self._resolve_mints(plan.steps)

        instructions: list[Instruction] = []
        for step in plan.steps:
            instructions.extend(step.instructions())

        fee_payer = ix.as_pubkey(plan.fee_payer, name="fee payer")
        blockhash_str = self.ledger.get_latest_blockhash()
        blockhash = Hash.from_string(blockhash_str)
        message = Message.new_with_blockhash(instructions, fee_payer, blockhash)

        required = list(message.account_keys[: message.header.num_required_signatures])
        by_key = {kp.pubkey(): kp for kp in platform_signers}
        pending = [k for k in required if k not in by_key]
        if any(k != fee_payer for k in pending):
            others = ", ".join(str(k) for k in pending if k != fee_payer)
            raise ValidationError(f"plan requires signatures beyond the fee payer: {others}")

        tx = Transaction.new_unsigned(message)
        signing = [by_key[k] for k in required if k in by_key]
        if signing:
            tx.partial_sign(signing, blockhash)

        programs = [str(message.account_keys[c.program_id_index]) for c in message.instructions]
        logger.info(
            "Assembled transaction: fee_payer=%s steps=%d instructions=%d pending=%d",
            fee_payer,
            len(plan.steps),
            len(instructions),
            len(pending),
        )
        return AssembledTransaction(
            transaction_b64=base64.b64encode(bytes(tx)).decode("ascii"),
            blockhash=blockhash_str,
            fee_payer=str(fee_payer),
            pending_signers=[str(k) for k in pending],
            programs=programs,
        )
