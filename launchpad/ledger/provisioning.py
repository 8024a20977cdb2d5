from __future__ import annotations

import logging

from solders.hash import Hash
from solders.keypair import Keypair
from solders.message import Message
from solders.transaction import Transaction

from launchpad.ledger import instructions as ix
from launchpad.ports.ledger import LedgerPort

logger = logging.getLogger(__name__)


class MintProvisioner:
    """Creates a new mint whose issuance authority is the treasury signer."""

    def __init__(self, ledger: LedgerPort):
        self.ledger = ledger

    def create(self, treasury: Keypair, decimals: int) -> str:
        """Submit create-account + initialize-mint, paid and signed by the treasury. Returns the mint address."""
        mint_kp = Keypair()
        rent = self.ledger.get_minimum_balance_for_rent_exemption(ix.MINT_SIZE)
        instructions = [
            ix.create_mint_account(treasury.pubkey(), mint_kp.pubkey(), rent),
            ix.initialize_mint(mint_kp.pubkey(), decimals, treasury.pubkey()),
        ]
        blockhash = Hash.from_string(self.ledger.get_latest_blockhash())
        message = Message.new_with_blockhash(instructions, treasury.pubkey(), blockhash)
        tx = Transaction([treasury, mint_kp], message, blockhash)
        signature = self.ledger.send_transaction(bytes(tx))
        logger.info("Submitted mint creation %s (mint=%s, decimals=%d)", signature, mint_kp.pubkey(), decimals)
        return str(mint_kp.pubkey())
