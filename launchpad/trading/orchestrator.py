"""
Request-level trade flows.

Every fund-moving flow starts with the authority check. The issuance counter is read from the
mint supply on the ledger once per request; the database copy is only a mirror for reporting.
"""

from __future__ import annotations

import base64
import logging
import math
import time
import uuid
from datetime import datetime, timezone
from typing import Any, Callable

import pandas as pd

from launchpad.domain.errors import AssetNotFound, ConfigurationDrift, NotReady, PaymentUnverified, ValidationError
from launchpad.domain.models import (
    LAMPORTS_PER_BASE,
    Asset,
    BuyBuildResult,
    BuyConfirmation,
    BuyPreview,
    CurveType,
    FeeOverrides,
    Phase,
    SellBuildResult,
    Side,
    Trade,
    TradeStatus,
)
from launchpad.ledger import instructions as ix
from launchpad.ledger.assembler import (
    AssetTransfer,
    CorrelationTag,
    EnsureHolding,
    Issue,
    NativeTransfer,
    PriorityHint,
    StepKind,
    TransactionAssembler,
    TransferPlan,
)
from launchpad.ledger.authority import AuthorityGuard
from launchpad.ledger.mint_state import MintState, decode_mint
from launchpad.ledger.provisioning import MintProvisioner
from launchpad.ledger.verifier import PaymentVerifier
from launchpad.ports.ledger import LedgerPort
from launchpad.ports.store import AssetStore
from launchpad.pricing.curve import CurvePricingEngine, to_raw
from launchpad.pricing.fees import FeeScheduler
from launchpad.utils.config_loader import EngineConfig
from launchpad.utils.retry import wait_until

logger = logging.getLogger(__name__)

MAX_DECIMALS = 9


def base_to_lamports(base_amount: Any) -> int:
    """Validate a user-supplied base amount and convert it to the smallest base unit."""
    try:
        amt = float(base_amount)
    except (TypeError, ValueError):
        raise ValidationError(f"base amount must be a number; got {base_amount!r}") from None
    if not math.isfinite(amt) or amt <= 0:
        raise ValidationError(f"base amount must be a positive finite number; got {base_amount!r}")
    lamports = int(round(amt * LAMPORTS_PER_BASE))
    if lamports <= 0:
        raise ValidationError(f"base amount {base_amount!r} is below the smallest unit")
    return lamports


def _address(value: Any, name: str) -> str:
    return str(ix.as_pubkey(value, name=name))


class TradeOrchestrator:
    def __init__(
        self,
        config: EngineConfig,
        ledger: LedgerPort,
        store: AssetStore,
        guard: AuthorityGuard,
        *,
        pricing: CurvePricingEngine | None = None,
        fees: FeeScheduler | None = None,
        verifier: PaymentVerifier | None = None,
        assembler: TransactionAssembler | None = None,
        provisioner: MintProvisioner | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.config = config
        self.ledger = ledger
        self.store = store
        self.guard = guard
        self.pricing = pricing or CurvePricingEngine(config.pricing)
        self.fees = fees or FeeScheduler(config.fees)
        self.verifier = verifier or PaymentVerifier(ledger)
        self.assembler = assembler or TransactionAssembler(ledger)
        self.provisioner = provisioner or MintProvisioner(ledger)
        self._sleep = sleep

    # ----- state helpers -----

    @property
    def treasury(self) -> str:
        return self.config.treasury.identity

    def _load_asset(self, asset_id: str) -> Asset:
        asset = self.store.get_asset(str(asset_id))
        if asset is None:
            raise AssetNotFound(f"asset {asset_id} not found")
        return asset

    def _mint_state(self, asset: Asset) -> MintState | None:
        """Current mint state, or None when the asset has no mint yet."""
        if not asset.mint:
            return None
        data = self.ledger.get_account_data(asset.mint)
        if data is None:
            raise NotReady(f"mint {asset.mint} for asset {asset.id} is not visible on the ledger yet")
        return decode_mint(data)

    def _require_mint_state(self, asset: Asset) -> MintState:
        state = self._mint_state(asset)
        if state is None:
            raise NotReady(f"asset {asset.id} has no mint yet; buy first")
        return state

    def _issuance(self, state: MintState | None) -> int:
        return state.supply if state is not None else 0

    def phase(self, asset: Asset, cumulative_issuance: int) -> Phase:
        if asset.migrated or self.pricing.crossed_window(cumulative_issuance, asset.decimals):
            return Phase.POST
        return Phase.PRE

    def _priority_steps(self) -> list[PriorityHint]:
        lc = self.config.ledger
        if lc.compute_unit_limit > 0 or lc.compute_unit_price > 0:
            return [PriorityHint(unit_limit=lc.compute_unit_limit, unit_price=lc.compute_unit_price)]
        return []

    def _fee_steps(self, payer: str, asset: Asset, lamports: int, phase: Phase):
        quote = self.fees.compute(lamports, phase, asset.fee_overrides)
        transfers = self.fees.transfers(quote, self.config.treasury.protocol_fee_recipient, asset.creator or None)
        steps = [NativeTransfer(payer, t.recipient, t.amount, kind=StepKind.FEE) for t in transfers]
        return quote, steps

    def _check_mint_authority(self, asset: Asset, state: MintState) -> None:
        if state.mint_authority != self.treasury:
            raise ConfigurationDrift(
                f"mint {asset.mint} issuance authority {state.mint_authority} is not the treasury {self.treasury}"
            )

    def _wait(self, poll: Callable[[], Any], what: str) -> Any:
        lc = self.config.ledger
        return wait_until(
            poll,
            attempts=lc.visibility_attempts,
            delay_seconds=lc.visibility_delay_seconds,
            what=what,
            sleep=self._sleep,
        )

    def _resolve_or_create_mint(self, asset: Asset, signer) -> tuple[Asset, MintState]:
        if asset.mint:
            return asset, self._require_mint_state(asset)

        created = self.provisioner.create(signer, asset.decimals)
        # The mint is attached to the asset only once it is visible on the ledger.
        data = self._wait(lambda: self.ledger.get_account_data(created), what=f"mint {created}")
        self.store.set_asset_mint(asset.id, created)
        asset = self._load_asset(asset.id)
        if asset.mint != created:
            # A concurrent request attached its own mint first; the stored one wins.
            logger.warning("Asset %s already had mint %s; created mint %s is unused", asset.id, asset.mint, created)
            return asset, self._require_mint_state(asset)
        logger.info("Asset %s mint %s is live", asset.id, asset.mint)
        return asset, decode_mint(data)

    # ----- quotes -----

    def quote_buy(self, asset_id: str, base_amount: float) -> int:
        asset = self._load_asset(asset_id)
        issuance = self._issuance(self._mint_state(asset))
        return self.pricing.quote_buy(asset, issuance, base_amount)

    def quote_sell(self, asset_id: str, base_amount: float) -> int:
        asset = self._load_asset(asset_id)
        issuance = self._issuance(self._mint_state(asset))
        return self.pricing.quote_sell(asset, issuance, base_amount)

    def preview_buy(self, asset_id: str, base_amount: float) -> BuyPreview:
        lamports = base_to_lamports(base_amount)
        asset = self._load_asset(asset_id)
        issuance = self._issuance(self._mint_state(asset))
        phase = self.phase(asset, issuance)
        fee = self.fees.compute(lamports, phase, asset.fee_overrides)
        transfers = self.fees.transfers(fee, self.config.treasury.protocol_fee_recipient, asset.creator or None)
        charged = sum(t.amount for t in transfers)
        return BuyPreview(
            base_amount=float(base_amount),
            progress=self.pricing.progress(issuance, asset.decimals),
            phase=phase,
            quoted_amount=self.pricing.quote_buy(asset, issuance, base_amount),
            total_cost=lamports + charged,
            fee=fee,
        )

    # ----- buy -----

    def build_buy(self, asset_id: str, payer: str, base_amount: float) -> BuyBuildResult:
        """
        Build the buyer-signed purchase: payment, fees and issuance in one atomic transaction.

        The treasury signs as issuance authority; the buyer is the fee payer and the only
        signature left to add. Creates the asset's mint on first use.
        """
        signer = self.guard.check()
        lamports = base_to_lamports(base_amount)
        payer = _address(payer, "payer")
        asset = self._load_asset(asset_id)

        asset, state = self._resolve_or_create_mint(asset, signer)
        self._check_mint_authority(asset, state)

        quoted = self.pricing.quote_buy(asset, state.supply, base_amount)
        if quoted <= 0:
            raise ValidationError(f"base amount {base_amount} buys no tokens at the current rate")

        phase = self.phase(asset, state.supply)
        fee, fee_steps = self._fee_steps(payer, asset, lamports, phase)
        steps = [
            *self._priority_steps(),
            EnsureHolding(payer=payer, owner=payer, mint=asset.mint),
            NativeTransfer(payer, self.treasury, lamports),
            *fee_steps,
            Issue(mint=asset.mint, owner=payer, authority=self.treasury, amount=to_raw(quoted, asset.decimals)),
            CorrelationTag(f"launchpad:buy:{asset.id}"),
        ]
        artifact = self.assembler.build(TransferPlan(fee_payer=payer, steps=tuple(steps)), [signer])
        logger.info(
            "Built buy for asset %s: payer=%s lamports=%d quoted=%d fee=%d phase=%s",
            asset.id,
            payer,
            lamports,
            quoted,
            fee.fee_total,
            phase.value,
        )
        return BuyBuildResult(artifact=artifact, quoted_amount=quoted, fee=fee)

    def confirm_buy(self, asset_id: str, payer: str, base_amount: float, payment_reference: str) -> BuyConfirmation:
        """
        Issue tokens against a payment the buyer already made to the treasury.

        The payment reference is claimed in the store before anything is submitted, so one
        payment backs at most one issuance.
        """
        signer = self.guard.check()
        lamports = base_to_lamports(base_amount)
        payer = _address(payer, "payer")
        reference = str(payment_reference or "").strip()
        if not reference:
            raise ValidationError("payment_reference is required")
        asset = self._load_asset(asset_id)
        if not asset.mint:
            raise NotReady(f"asset {asset.id} has no mint yet")

        self.verifier.require(reference, payer, self.treasury, lamports, issued_mint=asset.mint)

        claim = Trade(
            id=uuid.uuid4().hex,
            asset_id=asset.id,
            side=Side.BUY,
            base_amount=lamports,
            counterparty=payer,
            payment_reference=reference,
            timestamp=datetime.now(timezone.utc),
            status=TradeStatus.PENDING,
        )
        if not self.store.claim_payment(claim):
            raise PaymentUnverified(f"payment {reference} has already been used")

        try:
            state = self._require_mint_state(asset)
            self._check_mint_authority(asset, state)
            quoted = self.pricing.quote_buy(asset, state.supply, base_amount)
            if quoted <= 0:
                raise ValidationError(f"base amount {base_amount} buys no tokens at the current rate")
            raw = to_raw(quoted, asset.decimals)
            steps = [
                *self._priority_steps(),
                EnsureHolding(payer=self.treasury, owner=payer, mint=asset.mint),
                Issue(mint=asset.mint, owner=payer, authority=self.treasury, amount=raw),
                CorrelationTag(f"launchpad:claim:{reference}"),
            ]
            artifact = self.assembler.build(TransferPlan(fee_payer=self.treasury, steps=tuple(steps)), [signer])
        except Exception:
            self.store.release_payment(reference)
            raise

        try:
            signature = self.ledger.send_transaction(base64.b64decode(artifact.transaction_b64))
        except Exception:
            # The submission outcome is unknown, so the claim stays pending for reconciliation.
            logger.error("Issuance submission failed for payment %s; claim left pending", reference)
            raise

        self._wait(lambda: self.ledger.is_confirmed(signature), what=f"issuance {signature}")
        logger.info("Issued %d tokens of asset %s to %s (payment %s, tx %s)", quoted, asset.id, payer, reference, signature)

        recorded = True
        try:
            self.store.complete_trade(reference, raw, signature)
        except Exception as e:
            recorded = False
            logger.warning(f"Failed to record trade for payment {reference}: {e}")

        new_supply = state.supply + raw
        migrated = asset.migrated or self.pricing.crossed_window(new_supply, asset.decimals)
        if migrated and not asset.migrated:
            logger.info("Asset %s crossed its issuance window; now in post phase", asset.id)
        try:
            self.store.update_issuance(asset.id, new_supply, migrated)
        except Exception as e:
            logger.warning(f"Failed to update issuance mirror for asset {asset.id}: {e}")

        return BuyConfirmation(issued_amount=quoted, recorded=recorded, signature=signature)

    # ----- sell -----

    def build_sell(self, asset_id: str, seller: str, base_amount: float) -> SellBuildResult:
        """Build the seller-signed sale: treasury payout, fees and the token hand-over to the vault."""
        signer = self.guard.check()
        lamports = base_to_lamports(base_amount)
        seller = _address(seller, "seller")
        asset = self._load_asset(asset_id)
        state = self._require_mint_state(asset)

        required = self.pricing.quote_sell(asset, state.supply, base_amount)
        if required <= 0:
            raise ValidationError(f"base amount {base_amount} requires no tokens at the current rate")

        phase = self.phase(asset, state.supply)
        fee, fee_steps = self._fee_steps(seller, asset, lamports, phase)
        steps = [
            *self._priority_steps(),
            EnsureHolding(payer=self.treasury, owner=self.treasury, mint=asset.mint),
            EnsureHolding(payer=self.treasury, owner=seller, mint=asset.mint),
            NativeTransfer(self.treasury, seller, lamports),
            *fee_steps,
            AssetTransfer(
                mint=asset.mint,
                source_owner=seller,
                destination_owner=self.treasury,
                amount=to_raw(required, asset.decimals),
                decimals=asset.decimals,
            ),
            CorrelationTag(f"launchpad:sell:{asset.id}"),
        ]
        artifact = self.assembler.build(TransferPlan(fee_payer=seller, steps=tuple(steps)), [signer])
        logger.info(
            "Built sell for asset %s: seller=%s lamports=%d required=%d fee=%d phase=%s",
            asset.id,
            seller,
            lamports,
            required,
            fee.fee_total,
            phase.value,
        )
        return SellBuildResult(artifact=artifact, required_issuable_amount=required, fee=fee)

    # ----- asset management and reporting -----

    def create_asset(
        self,
        creator: str,
        curve_type: str = "linear",
        strength: int = 2,
        *,
        decimals: int = 6,
        name: str | None = None,
        symbol: str | None = None,
        asset_id: str | None = None,
        fee_overrides: FeeOverrides | None = None,
    ) -> Asset:
        try:
            curve = CurveType.parse(curve_type)
        except ValueError:
            raise ValidationError(f"unknown curve type {curve_type!r}") from None
        if int(strength) not in (1, 2, 3):
            raise ValidationError(f"strength must be 1, 2 or 3; got {strength}")
        if not 0 <= int(decimals) <= MAX_DECIMALS:
            raise ValidationError(f"decimals must be between 0 and {MAX_DECIMALS}; got {decimals}")
        o = fee_overrides or FeeOverrides()
        for label, bps in (("total", o.total_bps), ("creator", o.creator_bps), ("protocol", o.protocol_bps)):
            if bps is not None and not 0 <= int(bps) <= 10_000:
                raise ValidationError(f"{label} fee bps must be between 0 and 10000; got {bps}")

        asset = Asset(
            id=str(asset_id or uuid.uuid4().hex),
            curve_type=curve,
            strength=int(strength),
            creator=_address(creator, "creator"),
            decimals=int(decimals),
            name=name,
            symbol=symbol,
            fee_overrides=o,
        )
        self.store.create_asset(asset)
        logger.info("Created asset %s (%s, strength %d) for creator %s", asset.id, curve.value, asset.strength, asset.creator)
        return asset

    def asset_stats(self, asset_id: str) -> dict[str, Any]:
        asset = self._load_asset(asset_id)
        issuance = self._issuance(self._mint_state(asset))
        phase = self.phase(asset, issuance)
        return {
            "asset": asset.to_dict(),
            "cumulative_issuance": issuance,
            "issued_tokens": issuance // (10 ** asset.decimals),
            "window_tokens": self.config.pricing.issuance_window,
            "progress": self.pricing.progress(issuance, asset.decimals),
            "phase": phase.value,
            "current_rate": self.pricing.rate_for(asset, issuance),
        }

    def trade_history(self, asset_id: str, limit: int = 100) -> pd.DataFrame:
        asset = self._load_asset(asset_id)
        return self.store.get_trades(asset.id, max(1, min(int(limit), 1000)))
