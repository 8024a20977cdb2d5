from __future__ import annotations

import struct
from dataclasses import dataclass

from solders.pubkey import Pubkey

from launchpad.domain.errors import ExternalDependencyFailure
from launchpad.ledger.instructions import MINT_SIZE

# Mint account layout:
#  0..4   mint_authority option tag (u32 LE)
#  4..36  mint_authority
# 36..44  supply (u64 LE)
# 44      decimals (u8)
# 45      is_initialized (bool)
# 46..50  freeze_authority option tag
# 50..82  freeze_authority


@dataclass(frozen=True)
class MintState:
    supply: int
    decimals: int
    mint_authority: str | None
    initialized: bool


def decode_mint(data: bytes) -> MintState:
    if data is None or len(data) < MINT_SIZE:
        raise ExternalDependencyFailure(f"mint account data too short ({0 if data is None else len(data)} bytes)")
    auth_tag = struct.unpack_from("<I", data, 0)[0]
    authority = str(Pubkey.from_bytes(bytes(data[4:36]))) if auth_tag == 1 else None
    supply = struct.unpack_from("<Q", data, 36)[0]
    return MintState(
        supply=int(supply),
        decimals=int(data[44]),
        mint_authority=authority,
        initialized=bool(data[45]),
    )


def encode_mint(supply: int, decimals: int, mint_authority: str | None = None) -> bytes:
    """Inverse of decode_mint; used to seed in-memory ledgers."""
    if mint_authority:
        head = struct.pack("<I", 1) + bytes(Pubkey.from_string(mint_authority))
    else:
        head = struct.pack("<I", 0) + bytes(32)
    body = struct.pack("<QBB", int(supply), int(decimals), 1)
    tail = struct.pack("<I", 0) + bytes(32)
    return head + body + tail
