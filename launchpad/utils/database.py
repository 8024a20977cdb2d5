"""
Storage backend chosen once at import time from the environment.

A `postgres://` or `postgresql://` value in LAUNCHPAD_DATABASE_URL (falling back to DATABASE_URL)
selects PostgreSQL; anything else uses the SQLite file at LAUNCHPAD_SQLITE_PATH. Both modules
expose the same functions: init_db, ping, create_asset, get_asset, set_asset_mint,
update_issuance, claim_payment, release_payment, complete_trade, get_trades.
"""

from __future__ import annotations

import os

_POSTGRES_SCHEMES = ("postgres://", "postgresql://")


def selected_backend() -> str:
    url = (os.environ.get("LAUNCHPAD_DATABASE_URL") or os.environ.get("DATABASE_URL") or "").strip()
    return "postgres" if url.startswith(_POSTGRES_SCHEMES) else "sqlite"


BACKEND = selected_backend()

if BACKEND == "postgres":
    from .database_postgres import *  # noqa: F401,F403
else:
    from .database_sqlite import *  # noqa: F401,F403
