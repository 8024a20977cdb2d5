"""Run the launchpad HTTP API under uvicorn (one process per treasury)."""

from __future__ import annotations

import fcntl
import logging
import os
import sys
from pathlib import Path
from typing import IO

import uvicorn
from dotenv import load_dotenv

ROOT = Path(__file__).resolve().parent

logger = logging.getLogger("api_server")


def _configure_logging() -> None:
    logging.basicConfig(
        level=os.environ.get("LAUNCHPAD_LOG_LEVEL", "INFO").upper(),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        handlers=[
            logging.StreamHandler(sys.stderr),
            logging.FileHandler(os.environ.get("LAUNCHPAD_API_LOG", "api_server.log"), mode="a"),
        ],
    )


def _acquire_instance_lock(path: Path) -> IO[str] | None:
    """Exclusive non-blocking flock; the returned handle must stay open while serving."""
    handle = path.open("w")
    try:
        fcntl.flock(handle.fileno(), fcntl.LOCK_EX | fcntl.LOCK_NB)
    except OSError:
        handle.close()
        return None
    handle.write(str(os.getpid()))
    handle.flush()
    return handle


def main() -> None:
    _configure_logging()

    secrets = ROOT / "config" / "secrets.env"
    if secrets.exists():
        load_dotenv(secrets)
        logger.info("Loaded environment variables from %s", secrets)

    lock = _acquire_instance_lock(Path(os.environ.get("LAUNCHPAD_API_LOCK", ".api_server.lock")))
    if lock is None:
        logger.error("Another launchpad API holds the instance lock; refusing to start a second treasury signer.")
        sys.exit(1)

    host = os.environ.get("LAUNCHPAD_API_HOST", "127.0.0.1")
    port = int(os.environ.get("LAUNCHPAD_API_PORT", "8000"))
    logger.info(f"Serving launchpad API on http://{host}:{port}")
    try:
        # A single worker keeps one orchestrator and one signer per process.
        uvicorn.run("launchpad.api.app:app", host=host, port=port, workers=1, log_level="info")
    except Exception as e:
        logger.error(f"API server stopped: {e}", exc_info=True)
        sys.exit(1)
    finally:
        lock.close()


if __name__ == "__main__":
    main()
