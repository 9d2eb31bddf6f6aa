"""Idempotency keys and duplicate-subscription detection."""

import hashlib
import logging
from typing import Optional, Tuple

from .ledger import LedgerBase
from .models import (
    Detection,
    DonationKey,
    DonorRef,
    FingerprintKey,
    OneTimeKey,
    RecurringKey,
    ResolvedBeneficiary,
    Transaction,
)

logger = logging.getLogger(__name__)


def _norm(value: object) -> str:
    return " ".join(str(value or "").lower().split())


class DuplicateDetector:
    """Decides whether a transaction is already in the ledger.

    Subscription charges funding a child are keyed by (subscription, child)
    within their invoice, so one invoice covering several children yields
    one donation per child. Everything else is keyed by the charge plus the
    project or child it funds, or the donor when it funds neither. Rows
    exported without a charge ID fall back to a fingerprint of their
    content and their position among identical rows.
    """

    @staticmethod
    def fingerprint_parts(txn: Transaction) -> Tuple[str, ...]:
        """Normalized content a charge-less row is recognized by. Status is left out."""
        contact = txn.contact
        return (
            _norm(txn.invoice_id),
            _norm(txn.customer_id),
            _norm(txn.subscription_id),
            str(txn.amount),
            txn.transaction_time.isoformat() if txn.transaction_time else _norm(txn.transaction_date),
            _norm(txn.description),
            _norm(txn.plan_label),
            _norm(contact.email or contact.billing_email or contact.name),
        )

    @classmethod
    def fingerprint(cls, txn: Transaction, occurrence: int = 1) -> str:
        """
        Stable hash of a row's content.

        Args:
            txn: Normalized transaction.
            occurrence: 1 for the first row with this content in the batch,
                2 for the next identical one, and so on.
        """
        parts = cls.fingerprint_parts(txn) + (str(occurrence),)
        return hashlib.sha256("|".join(parts).encode("utf-8")).hexdigest()

    @classmethod
    def key_for(
        cls,
        txn: Transaction,
        donor: Optional[DonorRef],
        resolved: ResolvedBeneficiary,
        occurrence: int = 1,
    ) -> DonationKey:
        project_id = resolved.project.id if resolved.project else None
        child_id = resolved.child.id if resolved.child else None
        if txn.subscription_id and child_id is not None:
            return RecurringKey(
                invoice_id=txn.invoice_id,
                subscription_id=txn.subscription_id,
                child_id=child_id,
            )
        if not txn.charge_id:
            return FingerprintKey(
                fingerprint=cls.fingerprint(txn, occurrence),
                project_id=project_id,
                child_id=child_id,
            )
        funds_nothing = project_id is None and child_id is None
        return OneTimeKey(
            charge_id=txn.charge_id,
            project_id=project_id,
            child_id=child_id,
            donor_id=donor.id if donor and funds_nothing else None,
        )

    async def detect(
        self,
        ledger: LedgerBase,
        txn: Transaction,
        donor: Optional[DonorRef],
        resolved: ResolvedBeneficiary,
        occurrence: int = 1,
    ) -> Detection:
        """Look up the donation for this transaction and check for anomalies.

        Args:
            ledger: Ledger scope of the current row.
            txn: Normalized transaction.
            donor: Resolved donor, if any.
            resolved: Resolved beneficiary.
            occurrence: Position of the row among identical charge-less rows.

        Returns:
            Detection with the key, any existing donation and the
            duplicate-subscription flag.
        """
        key = self.key_for(txn, donor, resolved, occurrence)

        existing = await ledger.find_donation(key)
        if existing is not None:
            return Detection(
                key=key,
                existing=existing,
                duplicate_subscription=existing.duplicate_subscription_detected,
            )

        if isinstance(key, RecurringKey):
            conflict = await ledger.find_subscription_conflict(
                key.invoice_id,
                key.child_id,
                key.subscription_id,
            )
            if conflict is not None:
                logger.warning(
                    f"Duplicate subscription for child {key.child_id} on invoice "
                    f"{key.invoice_id}: {key.subscription_id} conflicts with "
                    f"{conflict.gateway_subscription_id} (donation {conflict.id})"
                )
                return Detection(
                    key=key,
                    duplicate_subscription=True,
                    conflicting_donation_id=conflict.id,
                )

        return Detection(key=key)
