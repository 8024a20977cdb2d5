"""Launchpad operator entrypoint.

    python main.py init-db           create/upgrade the database schema
    python main.py check-authority   confirm the treasury secret matches the published identity
    python main.py curve-table       print the rate curve for a curve type and strength
"""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

from dotenv import load_dotenv

logger = logging.getLogger("launchpad")


def _load_local_secrets() -> None:
    """Load local secrets for development runs (ignored by git)."""
    env_path = Path(__file__).resolve().parent / "config" / "secrets.env"
    if env_path.exists():
        load_dotenv(env_path)


def _init_db(args: argparse.Namespace) -> int:
    from launchpad.db.store import DatabaseStore

    store = DatabaseStore()
    store.init()
    logger.info("Database schema ready (backend=%s)", store.backend)
    return 0


def _check_authority(args: argparse.Namespace) -> int:
    from launchpad.domain.errors import ConfigurationDrift
    from launchpad.ledger.authority import AuthorityGuard
    from launchpad.utils.config_loader import EngineConfig, load_config

    config = EngineConfig.from_dict(load_config(args.config))
    try:
        guard = AuthorityGuard.from_config(config.treasury)
        guard.check()
    except ConfigurationDrift as e:
        logger.error("Treasury authority check failed: %s", e)
        return 1
    logger.info("Treasury authority OK (%s)", guard.derived_identity)
    return 0


def _curve_table(args: argparse.Namespace) -> int:
    from launchpad.domain.models import CurveType
    from launchpad.pricing.curve import CurvePricingEngine
    from launchpad.utils.config_loader import EngineConfig, load_config

    config = EngineConfig.from_dict(load_config(args.config))
    engine = CurvePricingEngine(config.pricing)
    for progress, rate in engine.rate_series(CurveType.parse(args.curve), args.strength, points=args.points, seed=args.seed):
        print(f"{progress:6.2f}  {rate:14.2f}")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Launchpad operator commands.")
    parser.add_argument("--config", default=None, help="Path to config.yaml (default: config/config.yaml)")
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("init-db", help="Create or upgrade the database schema.").set_defaults(func=_init_db)
    sub.add_parser("check-authority", help="Verify the treasury signing secret.").set_defaults(func=_check_authority)

    curve = sub.add_parser("curve-table", help="Print rate vs progress for a curve.")
    curve.add_argument("--curve", default="linear", help="linear, exponential or randomized")
    curve.add_argument("--strength", type=int, default=2, choices=(1, 2, 3))
    curve.add_argument("--points", type=int, default=10)
    curve.add_argument("--seed", type=int, default=0)
    curve.set_defaults(func=_curve_table)
    return parser


def main(argv: list[str] | None = None) -> int:
    _load_local_secrets()
    args = build_parser().parse_args(argv)
    return int(args.func(args))


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO, format="%(asctime)s [%(levelname)s] %(name)s: %(message)s")
    sys.exit(main())
