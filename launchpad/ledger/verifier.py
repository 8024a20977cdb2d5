from __future__ import annotations

import logging

from launchpad.domain.errors import PaymentUnverified
from launchpad.domain.models import PaymentVerification, VerificationStatus
from launchpad.ports.ledger import LedgerPort

logger = logging.getLogger(__name__)

# Accept up to 2% shortfall for rounding and timing between quote and payment.
PAYMENT_TOLERANCE_BPS = 9_800


class PaymentVerifier:
    def __init__(self, ledger: LedgerPort, tolerance_bps: int = PAYMENT_TOLERANCE_BPS):
        self.ledger = ledger
        self.tolerance_bps = int(tolerance_bps)

    def verify(
        self,
        payment_reference: str,
        expected_payer: str,
        expected_recipient: str,
        expected_amount: int,
        issued_mint: str | None = None,
    ) -> PaymentVerification:
        """
        Check a confirmed payment. With `issued_mint`, a payment whose transaction already moved
        that mint (a self-contained buy) is ALREADY_ISSUED and cannot back a second issuance.
        """
        required = int(expected_amount) * self.tolerance_bps // 10_000

        tx = self.ledger.get_confirmed_transaction(payment_reference)
        if tx is None:
            logger.info("Payment %s not found or not confirmed", payment_reference)
            return PaymentVerification(VerificationStatus.NOT_FOUND, required=required)

        idx_payer = tx.index_of(expected_payer)
        idx_recipient = tx.index_of(expected_recipient)
        if idx_payer is None or idx_recipient is None:
            logger.info("Payment %s is missing payer or recipient account", payment_reference)
            return PaymentVerification(VerificationStatus.NOT_FOUND, required=required)

        if tx.failed:
            logger.info("Payment %s failed on the ledger", payment_reference)
            return PaymentVerification(VerificationStatus.FAILED, required=required)

        if issued_mint and str(issued_mint) in tx.token_mints:
            logger.warning("Payment %s already carries an issuance of mint %s", payment_reference, issued_mint)
            return PaymentVerification(VerificationStatus.ALREADY_ISSUED, required=required)

        delta = int(tx.post_balances[idx_recipient]) - int(tx.pre_balances[idx_recipient])
        if delta < required:
            logger.info("Payment %s too small: recipient delta %d < required %d", payment_reference, delta, required)
            return PaymentVerification(VerificationStatus.INSUFFICIENT, delta=delta, required=required)

        return PaymentVerification(VerificationStatus.VERIFIED, delta=delta, required=required)

    def require(
        self,
        payment_reference: str,
        expected_payer: str,
        expected_recipient: str,
        expected_amount: int,
        issued_mint: str | None = None,
    ) -> PaymentVerification:
        result = self.verify(payment_reference, expected_payer, expected_recipient, expected_amount, issued_mint)
        if not result.verified:
            raise PaymentUnverified(f"payment {payment_reference} not verified: {result.status.value}")
        return result
