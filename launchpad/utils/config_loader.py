from __future__ import annotations

import logging
import os
import threading
from copy import deepcopy
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

logger = logging.getLogger(__name__)

_cache_lock = threading.Lock()
_cached: dict[str, Any] | None = None
_cached_path: str | None = None


def _project_root() -> Path:
    # launchpad/utils/config_loader.py -> launchpad/utils -> launchpad -> project root
    return Path(__file__).resolve().parents[2]


def default_config_path() -> Path:
    return _project_root() / "config" / "config.yaml"


def _apply_env_overrides(cfg: dict[str, Any]) -> None:
    """
    Override selected YAML settings with environment variables.

    Deployments set the treasury and RPC endpoint per environment; everything else stays in YAML.
    """
    ledger = cfg.setdefault("ledger", {})
    if os.getenv("LAUNCHPAD_RPC_URL"):
        ledger["rpc_url"] = os.environ["LAUNCHPAD_RPC_URL"]

    treasury = cfg.setdefault("treasury", {})
    if os.getenv("LAUNCHPAD_TREASURY"):
        treasury["identity"] = os.environ["LAUNCHPAD_TREASURY"]
    if os.getenv("LAUNCHPAD_FEE_TREASURY"):
        treasury["fee_treasury"] = os.environ["LAUNCHPAD_FEE_TREASURY"]

    pricing = cfg.setdefault("pricing", {})
    if os.getenv("LAUNCHPAD_ISSUANCE_WINDOW"):
        pricing["issuance_window"] = int(os.environ["LAUNCHPAD_ISSUANCE_WINDOW"])

    fees = cfg.setdefault("fees", {})
    if os.getenv("LAUNCHPAD_FEE_CAP_PRE"):
        fees["cap_pre"] = int(os.environ["LAUNCHPAD_FEE_CAP_PRE"])
    if os.getenv("LAUNCHPAD_FEE_CAP_POST"):
        fees["cap_post"] = int(os.environ["LAUNCHPAD_FEE_CAP_POST"])


def validate_config(cfg: dict[str, Any]) -> None:
    """
    Fail fast if the configuration is missing required sections.
    """
    required_top = ["treasury", "ledger"]
    missing = [k for k in required_top if k not in cfg]
    if missing:
        raise ValueError(f"Missing required config sections: {', '.join(missing)}")

    treasury = cfg.get("treasury") or {}
    if not str(treasury.get("identity") or "").strip():
        raise ValueError("Missing treasury.identity in config")

    ledger = cfg.get("ledger") or {}
    if not str(ledger.get("rpc_url") or "").strip():
        raise ValueError("Missing ledger.rpc_url in config")


def load_config(config_path: str | Path | None = None, *, force_reload: bool = False) -> dict[str, Any]:
    """
    Load the YAML config once and reuse it across the process.

    - Reads `config/config.yaml` by default.
    - Applies environment overrides for a small set of deployment settings.
    - Returns a deep copy so callers can safely mutate local copies.
    """
    global _cached, _cached_path

    path = Path(config_path) if config_path else default_config_path()
    path_str = str(path.resolve())

    with _cache_lock:
        if not force_reload and _cached is not None and _cached_path == path_str:
            return deepcopy(_cached)

        if not path.exists():
            raise FileNotFoundError(f"Config file not found: {path}")

        with path.open("r", encoding="utf-8") as f:
            cfg = yaml.safe_load(f) or {}

        if not isinstance(cfg, dict):
            raise ValueError(f"Config must be a YAML mapping (dict); got {type(cfg).__name__}")

        _apply_env_overrides(cfg)
        validate_config(cfg)

        _cached = cfg
        _cached_path = path_str
        logger.info("Loaded config from %s", path_str)
        return deepcopy(cfg)


# ----- Typed engine configuration -----
# Components receive these objects at construction; nothing below reads the environment.


def _int_keys(d: dict[Any, Any] | None, default: dict[int, float]) -> dict[int, float]:
    if not d:
        return dict(default)
    return {int(k): float(v) for k, v in d.items()}


@dataclass(frozen=True)
class PricingConfig:
    base_rate: int = 1_000_000
    min_rate_ratio: float = 0.02
    max_rate_ratio: float = 3.0
    issuance_window: int = 800_000_000
    steepness: dict[int, float] = field(default_factory=lambda: {1: 0.25, 2: 0.5, 3: 0.75})
    exponents: dict[int, float] = field(default_factory=lambda: {1: 3.0, 2: 2.0, 3: 1.5})
    volatility_band: float = 0.10
    event_probability: float = 0.015
    favorable_multiplier: float = 1.5
    unfavorable_multiplier: float = 0.5
    # None quotes sells at the current progress, the same reference point as buys.
    sell_reference_progress: float | None = None
    sell_premium: float = 1.0

    @property
    def min_rate(self) -> float:
        return self.base_rate * self.min_rate_ratio

    @property
    def max_rate(self) -> float:
        return self.base_rate * self.max_rate_ratio

    @classmethod
    def from_dict(cls, d: dict[str, Any] | None) -> "PricingConfig":
        d = d or {}
        base = cls()
        ref = d.get("sell_reference_progress", base.sell_reference_progress)
        return cls(
            base_rate=int(d.get("base_rate", base.base_rate)),
            min_rate_ratio=float(d.get("min_rate_ratio", base.min_rate_ratio)),
            max_rate_ratio=float(d.get("max_rate_ratio", base.max_rate_ratio)),
            issuance_window=int(d.get("issuance_window", base.issuance_window)),
            steepness=_int_keys(d.get("steepness"), base.steepness),
            exponents=_int_keys(d.get("exponents"), base.exponents),
            volatility_band=float(d.get("volatility_band", base.volatility_band)),
            event_probability=float(d.get("event_probability", base.event_probability)),
            favorable_multiplier=float(d.get("favorable_multiplier", base.favorable_multiplier)),
            unfavorable_multiplier=float(d.get("unfavorable_multiplier", base.unfavorable_multiplier)),
            sell_reference_progress=None if ref is None else float(ref),
            sell_premium=float(d.get("sell_premium", base.sell_premium)),
        )


@dataclass(frozen=True)
class FeeTier:
    """`max_base` is the exclusive upper trade size in base units; None means unbounded."""

    max_base: float | None
    total_bps: int
    creator_bps: int


def _default_pre_tiers() -> tuple[FeeTier, ...]:
    return (
        FeeTier(max_base=0.5, total_bps=100, creator_bps=40),
        FeeTier(max_base=2.0, total_bps=75, creator_bps=30),
        FeeTier(max_base=10.0, total_bps=50, creator_bps=20),
        FeeTier(max_base=None, total_bps=30, creator_bps=12),
    )


@dataclass(frozen=True)
class FeeConfig:
    pre_tiers: tuple[FeeTier, ...] = field(default_factory=_default_pre_tiers)
    post_tier: FeeTier = field(default_factory=lambda: FeeTier(max_base=None, total_bps=100, creator_bps=60))
    cap_pre: int = 500_000_000
    cap_post: int = 250_000_000

    @classmethod
    def from_dict(cls, d: dict[str, Any] | None) -> "FeeConfig":
        d = d or {}
        base = cls()
        pre = d.get("pre_tiers")
        post = d.get("post_tier")
        pre_tiers = base.pre_tiers
        if pre:
            pre_tiers = tuple(
                FeeTier(
                    max_base=None if t.get("max_base") is None else float(t["max_base"]),
                    total_bps=int(t["total_bps"]),
                    creator_bps=int(t.get("creator_bps", 0)),
                )
                for t in pre
            )
        post_tier = base.post_tier
        if post:
            post_tier = FeeTier(max_base=None, total_bps=int(post["total_bps"]), creator_bps=int(post.get("creator_bps", 0)))
        return cls(
            pre_tiers=pre_tiers,
            post_tier=post_tier,
            cap_pre=int(d.get("cap_pre", base.cap_pre)),
            cap_post=int(d.get("cap_post", base.cap_post)),
        )


@dataclass(frozen=True)
class LedgerConfig:
    rpc_url: str = "https://api.devnet.solana.com"
    commitment: str = "confirmed"
    request_timeout_seconds: float = 10.0
    visibility_attempts: int = 10
    visibility_delay_seconds: float = 0.5
    compute_unit_price: int = 0
    compute_unit_limit: int = 0

    @classmethod
    def from_dict(cls, d: dict[str, Any] | None) -> "LedgerConfig":
        d = d or {}
        base = cls()
        return cls(
            rpc_url=str(d.get("rpc_url", base.rpc_url)),
            commitment=str(d.get("commitment", base.commitment)),
            request_timeout_seconds=float(d.get("request_timeout_seconds", base.request_timeout_seconds)),
            visibility_attempts=max(1, int(d.get("visibility_attempts", base.visibility_attempts))),
            visibility_delay_seconds=max(0.0, float(d.get("visibility_delay_seconds", base.visibility_delay_seconds))),
            compute_unit_price=int(d.get("compute_unit_price", base.compute_unit_price)),
            compute_unit_limit=int(d.get("compute_unit_limit", base.compute_unit_limit)),
        )


@dataclass(frozen=True)
class TreasuryConfig:
    identity: str
    secret_env: str = "LAUNCHPAD_TREASURY_SECRET"
    fee_treasury: str | None = None

    @property
    def protocol_fee_recipient(self) -> str:
        return self.fee_treasury or self.identity

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> "TreasuryConfig":
        return cls(
            identity=str(d["identity"]).strip(),
            secret_env=str(d.get("secret_env") or "LAUNCHPAD_TREASURY_SECRET"),
            fee_treasury=(str(d["fee_treasury"]).strip() or None) if d.get("fee_treasury") else None,
        )


@dataclass(frozen=True)
class EngineConfig:
    """
    Immutable configuration injected into every engine component.

    Lifecycle: entrypoints call `load_config()` once, build an EngineConfig from it, then construct
    the guard, pricing engine, fee scheduler and orchestrator with it.
    """

    treasury: TreasuryConfig
    pricing: PricingConfig = field(default_factory=PricingConfig)
    fees: FeeConfig = field(default_factory=FeeConfig)
    ledger: LedgerConfig = field(default_factory=LedgerConfig)

    @classmethod
    def from_dict(cls, cfg: dict[str, Any]) -> "EngineConfig":
        validate_config(cfg)
        return cls(
            treasury=TreasuryConfig.from_dict(cfg["treasury"]),
            pricing=PricingConfig.from_dict(cfg.get("pricing")),
            fees=FeeConfig.from_dict(cfg.get("fees")),
            ledger=LedgerConfig.from_dict(cfg.get("ledger")),
        )
