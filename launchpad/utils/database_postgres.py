"""
PostgreSQL database backend (compatibility wrapper).

The concrete implementation is split into:
- `launchpad/db/postgres/pool.py` (connection pool + helpers)
- `launchpad/db/postgres/schema.py` (schema initialisation)
- `launchpad/db/postgres/repositories/*` (table-focused repository functions)

This file re-exports the public surface used by `launchpad.utils.database`.
"""

from __future__ import annotations

from launchpad.db.postgres.pool import ping, safe_db_read  # noqa: F401
from launchpad.db.postgres.schema import init_db  # noqa: F401
from launchpad.db.postgres.repositories.assets import (  # noqa: F401
    create_asset,
    get_asset,
    set_asset_mint,
    update_issuance,
)
from launchpad.db.postgres.repositories.trades import (  # noqa: F401
    claim_payment,
    complete_trade,
    get_trades,
    release_payment,
)
