"""
Raw instruction builders for the token and associated-account programs.

Only the handful of instructions the engine emits are covered; layouts follow the on-ledger
program ABIs (little-endian, one-byte instruction tag).
"""

from __future__ import annotations

import struct

from solders import system_program
from solders.compute_budget import set_compute_unit_limit, set_compute_unit_price
from solders.instruction import AccountMeta, Instruction
from solders.pubkey import Pubkey
from solders.system_program import CreateAccountParams, TransferParams

from launchpad.domain.errors import ValidationError

TOKEN_PROGRAM_ID = Pubkey.from_string("TokenkegQfeZyiNwAJbNbGKPFXCWuBvf9Ss623VQ5DA")
ASSOCIATED_TOKEN_PROGRAM_ID = Pubkey.from_string("ATokenGPvbdGVxr1b2hvZbsiqW5xWH25efTNsLJA8knL")
MEMO_PROGRAM_ID = Pubkey.from_string("MemoSq4gqABAXKb96qnH8TysNcWxMyWCqXgDLGmfcHr")
SYSTEM_PROGRAM_ID = system_program.ID

MINT_SIZE = 82

_TAG_MINT_TO = 7
_TAG_TRANSFER_CHECKED = 12
_TAG_INITIALIZE_MINT2 = 20
_ATA_CREATE_IDEMPOTENT = 1


def as_pubkey(value: str | Pubkey, *, name: str = "address") -> Pubkey:
    if isinstance(value, Pubkey):
        return value
    try:
        return Pubkey.from_string(str(value).strip())
    except ValueError as e:
        raise ValidationError(f"Invalid {name}: {value!r}") from e


def holding_address(owner: str | Pubkey, mint: str | Pubkey) -> Pubkey:
    """Associated token account of (owner, mint)."""
    owner_pk = as_pubkey(owner, name="owner")
    mint_pk = as_pubkey(mint, name="mint")
    address, _bump = Pubkey.find_program_address(
        [bytes(owner_pk), bytes(TOKEN_PROGRAM_ID), bytes(mint_pk)],
        ASSOCIATED_TOKEN_PROGRAM_ID,
    )
    return address


def native_transfer(source: Pubkey, destination: Pubkey, lamports: int) -> Instruction:
    return system_program.transfer(TransferParams(from_pubkey=source, to_pubkey=destination, lamports=int(lamports)))


def create_holding_idempotent(payer: Pubkey, owner: Pubkey, mint: Pubkey) -> Instruction:
    return Instruction(
        ASSOCIATED_TOKEN_PROGRAM_ID,
        bytes([_ATA_CREATE_IDEMPOTENT]),
        [
            AccountMeta(payer, True, True),
            AccountMeta(holding_address(owner, mint), False, True),
            AccountMeta(owner, False, False),
            AccountMeta(mint, False, False),
            AccountMeta(SYSTEM_PROGRAM_ID, False, False),
            AccountMeta(TOKEN_PROGRAM_ID, False, False),
        ],
    )


def mint_to(mint: Pubkey, destination: Pubkey, authority: Pubkey, amount: int) -> Instruction:
    return Instruction(
        TOKEN_PROGRAM_ID,
        struct.pack("<BQ", _TAG_MINT_TO, int(amount)),
        [
            AccountMeta(mint, False, True),
            AccountMeta(destination, False, True),
            AccountMeta(authority, True, False),
        ],
    )


def transfer_checked(
    source: Pubkey, mint: Pubkey, destination: Pubkey, owner: Pubkey, amount: int, decimals: int
) -> Instruction:
    return Instruction(
        TOKEN_PROGRAM_ID,
        struct.pack("<BQB", _TAG_TRANSFER_CHECKED, int(amount), int(decimals)),
        [
            AccountMeta(source, False, True),
            AccountMeta(mint, False, False),
            AccountMeta(destination, False, True),
            AccountMeta(owner, True, False),
        ],
    )


def create_mint_account(payer: Pubkey, mint: Pubkey, lamports: int) -> Instruction:
    return system_program.create_account(
        CreateAccountParams(from_pubkey=payer, to_pubkey=mint, lamports=int(lamports), space=MINT_SIZE, owner=TOKEN_PROGRAM_ID)
    )


def initialize_mint(mint: Pubkey, decimals: int, mint_authority: Pubkey) -> Instruction:
    # No freeze authority.
    data = struct.pack("<BB", _TAG_INITIALIZE_MINT2, int(decimals)) + bytes(mint_authority) + b"\x00"
    return Instruction(TOKEN_PROGRAM_ID, data, [AccountMeta(mint, False, True)])


def memo(text: str) -> Instruction:
    return Instruction(MEMO_PROGRAM_ID, text.encode("utf-8"), [])


def priority_instructions(unit_limit: int, unit_price: int) -> list[Instruction]:
    out: list[Instruction] = []
    if unit_limit > 0:
        out.append(set_compute_unit_limit(int(unit_limit)))
    if unit_price > 0:
        out.append(set_compute_unit_price(int(unit_price)))
    return out
