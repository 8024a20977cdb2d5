from __future__ import annotations

from launchpad.domain.models import LAMPORTS_PER_BASE, FeeOverrides, FeeQuote, FeeTransfer, Phase
from launchpad.utils.config_loader import FeeConfig, FeeTier


class FeeScheduler:
    """
    Trade fee computation.

    All percentages are basis points (1 bp = 0.01%). The protocol share absorbs rounding so the
    creator and protocol shares always sum to the fee total.
    """

    def __init__(self, config: FeeConfig):
        self.config = config

    def tier_for(self, trade_lamports: int, phase: Phase) -> FeeTier:
        if phase is Phase.POST:
            return self.config.post_tier
        trade_base = int(trade_lamports) / LAMPORTS_PER_BASE
        for tier in self.config.pre_tiers:
            if tier.max_base is None or trade_base < tier.max_base:
                return tier
        return self.config.pre_tiers[-1]

    def cap_for(self, phase: Phase) -> int:
        return self.config.cap_pre if phase is Phase.PRE else self.config.cap_post

    def compute(self, trade_lamports: int, phase: Phase, overrides: FeeOverrides | None = None) -> FeeQuote:
        amount = max(int(trade_lamports), 0)
        cap = self.cap_for(phase)
        tier = self.tier_for(amount, phase)

        o = overrides or FeeOverrides()
        total_bps = max(int(o.total_bps if o.total_bps is not None else tier.total_bps), 0)
        creator_bps = max(int(o.creator_bps if o.creator_bps is not None else tier.creator_bps), 0)
        creator_bps = min(creator_bps, total_bps)
        protocol_bps = int(o.protocol_bps) if o.protocol_bps is not None else total_bps - creator_bps

        if total_bps == 0:
            return FeeQuote(total_bps=0, creator_bps=0, protocol_bps=0, cap=cap, fee_total=0, creator_share=0, protocol_share=0)

        fee_total = min((amount * total_bps) // 10_000, cap)
        creator_share = (fee_total * creator_bps) // total_bps
        return FeeQuote(
            total_bps=total_bps,
            creator_bps=creator_bps,
            protocol_bps=protocol_bps,
            cap=cap,
            fee_total=fee_total,
            creator_share=creator_share,
            protocol_share=fee_total - creator_share,
        )

    @staticmethod
    def transfers(quote: FeeQuote, protocol_treasury: str, creator: str | None) -> list[FeeTransfer]:
        """Ordered fee transfers (protocol first). Zero amounts are dropped."""
        if quote.total_bps == 0:
            return []
        out: list[FeeTransfer] = []
        if quote.protocol_share > 0:
            out.append(FeeTransfer(recipient=protocol_treasury, amount=quote.protocol_share))
        # Without a creator identity the creator share is not charged at all.
        if quote.creator_share > 0 and creator:
            out.append(FeeTransfer(recipient=creator, amount=quote.creator_share))
        return out
