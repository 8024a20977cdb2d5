"""
Bonding-curve pricing.

Rates are expressed in whole issuable tokens per 1 base unit. All functions here are pure: the
issuance counter and configuration are passed in, nothing is read from the environment or the
ledger.
"""

from __future__ import annotations

import hashlib
import math
from decimal import ROUND_FLOOR, Decimal
from typing import Callable, Protocol

import numpy as np

from launchpad.domain.errors import ValidationError
from launchpad.domain.models import Asset, CurveType
from launchpad.utils.config_loader import PricingConfig

STRENGTHS = (1, 2, 3)


class RandomSource(Protocol):
    def uniform(self) -> float: ...


class SeededRandom:
    """Deterministic uniform draws in [0, 1) for a given integer seed."""

    def __init__(self, seed: int):
        self._rng = np.random.default_rng(seed)

    def uniform(self) -> float:
        return float(self._rng.random())


def curve_seed(asset_id: str, cumulative_issuance: int, strength: int) -> int:
    """Stable 64-bit seed for the randomized curve at a given state (not cryptographic)."""
    h = hashlib.blake2b(f"{asset_id}:{int(cumulative_issuance)}:{int(strength)}".encode("utf-8"), digest_size=8)
    return int.from_bytes(h.digest(), "little")


def clamp(v: float, lo: float, hi: float) -> float:
    return max(lo, min(hi, v))


def floor_product(*factors: float) -> int:
    """floor() of a product of floats, taken in decimal so 1.001 * 1e6 is 1001000, not 1000999."""
    product = Decimal(1)
    for f in factors:
        product *= Decimal(str(f))
    return int(product.to_integral_value(rounding=ROUND_FLOOR))


def to_raw(tokens: int, decimals: int) -> int:
    """Whole tokens -> raw ledger units."""
    return int(tokens) * (10 ** int(decimals))


class CurvePricingEngine:
    def __init__(self, config: PricingConfig, rng_factory: Callable[[int], RandomSource] = SeededRandom):
        self.config = config
        self._rng_factory = rng_factory

    # ----- progress -----

    def window_raw(self, decimals: int) -> int:
        return to_raw(self.config.issuance_window, decimals)

    def progress(self, cumulative_issuance: int, decimals: int) -> float:
        window = self.window_raw(decimals)
        if window <= 0:
            return 1.0
        return clamp(max(int(cumulative_issuance), 0) / window, 0.0, 1.0)

    def crossed_window(self, cumulative_issuance: int, decimals: int) -> bool:
        return int(cumulative_issuance) >= self.window_raw(decimals)

    # ----- rate policy -----

    def _check_strength(self, strength: int) -> int:
        s = int(strength)
        if s not in STRENGTHS:
            raise ValidationError(f"strength must be one of {STRENGTHS}; got {strength}")
        return s

    def _linear_base(self, progress: float, strength: int) -> float:
        return self.config.base_rate * (1.0 - progress * self.config.steepness[strength])

    def _randomized(self, progress: float, strength: int, seed: int) -> float:
        cfg = self.config
        rng = self._rng_factory(seed)
        volatility = 1.0 - cfg.volatility_band + 2.0 * cfg.volatility_band * rng.uniform()
        roll = rng.uniform()
        if roll < cfg.event_probability:
            event = cfg.favorable_multiplier
        elif roll >= 1.0 - cfg.event_probability:
            event = cfg.unfavorable_multiplier
        else:
            event = 1.0
        return self._linear_base(progress, strength) * volatility * event

    def rate(self, curve_type: CurveType, strength: int, progress: float, seed: int = 0) -> float:
        s = self._check_strength(strength)
        p = clamp(float(progress), 0.0, 1.0) if math.isfinite(progress) else 0.0

        if curve_type is CurveType.LINEAR:
            raw = self._linear_base(p, s)
        elif curve_type is CurveType.EXPONENTIAL:
            raw = self.config.base_rate * (1.0 - p ** self.config.exponents[s])
        elif curve_type is CurveType.RANDOMIZED:
            raw = self._randomized(p, s, seed)
        else:
            raise ValidationError(f"Unsupported curve type: {curve_type}")

        return clamp(raw, self.config.min_rate, self.config.max_rate)

    def rate_for(self, asset: Asset, cumulative_issuance: int, progress: float | None = None) -> float:
        p = self.progress(cumulative_issuance, asset.decimals) if progress is None else progress
        seed = curve_seed(asset.id, cumulative_issuance, asset.strength)
        return self.rate(asset.curve_type, asset.strength, p, seed)

    # ----- quotes -----

    @staticmethod
    def _usable_amount(base_amount: float) -> float | None:
        try:
            amt = float(base_amount)
        except (TypeError, ValueError):
            return None
        if not math.isfinite(amt) or amt <= 0:
            return None
        return amt

    def quote_buy(self, asset: Asset, cumulative_issuance: int, base_amount: float) -> int:
        """Whole tokens issued for `base_amount` base units at the current progress."""
        amt = self._usable_amount(base_amount)
        if amt is None:
            return 0
        rate = self.rate_for(asset, cumulative_issuance)
        return max(0, floor_product(amt, rate))

    def quote_sell(self, asset: Asset, cumulative_issuance: int, base_amount: float) -> int:
        """Whole tokens the seller must hand over to receive `base_amount` base units."""
        amt = self._usable_amount(base_amount)
        if amt is None:
            return 0
        ref = self.config.sell_reference_progress
        rate = self.rate_for(asset, cumulative_issuance, progress=ref)
        return max(0, floor_product(amt, rate, self.config.sell_premium))

    def rate_series(self, curve_type: CurveType, strength: int, points: int = 100, seed: int = 0) -> list[tuple[float, float]]:
        n = max(1, int(points))
        return [(i / n, self.rate(curve_type, strength, i / n, seed)) for i in range(n + 1)]
