from __future__ import annotations

import json
import logging
import os
from typing import Mapping

from solders.keypair import Keypair
from solders.signature import Signature

from launchpad.domain.errors import ConfigurationDrift
from launchpad.utils.config_loader import TreasuryConfig

logger = logging.getLogger(__name__)


def load_signer(raw: str) -> Keypair:
    """
    Parse the treasury signing secret.

    Accepts a JSON array of 64 bytes (`[12,34,...]`) or a base58-encoded secret key.
    Error messages never echo the secret itself.
    """
    raw = (raw or "").strip()
    if not raw:
        raise ConfigurationDrift("treasury signing secret is missing")

    if raw.startswith("["):
        try:
            arr = json.loads(raw)
        except json.JSONDecodeError as e:
            raise ConfigurationDrift(f"treasury signing secret is not valid JSON (line {e.lineno})") from None
        if not isinstance(arr, list) or len(arr) != 64:
            size = len(arr) if isinstance(arr, list) else "non-array"
            raise ConfigurationDrift(f"treasury signing secret must be a 64-element JSON array; got {size}")
        try:
            return Keypair.from_bytes(bytes(int(b) for b in arr))
        except (TypeError, ValueError):
            raise ConfigurationDrift("treasury signing secret bytes are not a valid keypair") from None

    try:
        # 64-byte base58 value; Signature gives a checked decode of exactly that shape.
        return Keypair.from_bytes(bytes(Signature.from_string(raw)))
    except ValueError:
        raise ConfigurationDrift("treasury signing secret is not a valid base58 keypair") from None


class AuthorityGuard:
    """
    Confirms the held signing secret matches the published treasury identity.

    `check()` runs on every fund-moving request before anything else; the result is never cached.
    """

    def __init__(self, signer: Keypair, published_identity: str):
        self._signer = signer
        self.published_identity = str(published_identity).strip()

    @classmethod
    def from_config(cls, treasury: TreasuryConfig, environ: Mapping[str, str] | None = None) -> "AuthorityGuard":
        env = os.environ if environ is None else environ
        return cls(load_signer(env.get(treasury.secret_env, "")), treasury.identity)

    @property
    def derived_identity(self) -> str:
        return str(self._signer.pubkey())

    def check(self) -> Keypair:
        """Return the treasury signer, or raise ConfigurationDrift on mismatch."""
        derived = self.derived_identity
        if derived != self.published_identity:
            logger.error(
                "Treasury identity drift: signer public key %s does not match published treasury %s",
                derived,
                self.published_identity,
            )
            raise ConfigurationDrift(
                f"treasury signer {derived} does not match published treasury {self.published_identity}"
            )
        return self._signer
