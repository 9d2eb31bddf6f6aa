"""Status policy for imported donations."""

import logging
from typing import Dict, FrozenSet, Optional, Sequence

from ..database.models import DonationStatus
from .config import ImportSettings
from .models import StatusDecision

logger = logging.getLogger(__name__)

DUPLICATE_SUBSCRIPTION_REASON = "Duplicate subscription for child on the same invoice"

# Fields a donation cannot be trusted without, in reporting order
REQUIRED_FIELDS = ("donor", "amount", "beneficiary", "date", "charge_id")

# Gateway states that only apply to a donation that already went through
REVERSAL_STATUSES = {
    "refunded": DonationStatus.REFUNDED,
    "canceled": DonationStatus.CANCELED,
}

FORWARD_TRANSITIONS: Dict[DonationStatus, FrozenSet[DonationStatus]] = {
    DonationStatus.SUCCEEDED: frozenset({DonationStatus.REFUNDED, DonationStatus.CANCELED}),
}


class StatusResolver:
    """
    Picks the canonical status for a transaction and decides which changes
    a re-import may apply to an existing donation.

    Evaluation order: gateway failure, then anomalies (duplicate
    subscription, missing fields), then reversals, then success. Anything
    the gateway reports that is not understood needs a human.
    """

    def __init__(self, settings: Optional[ImportSettings] = None):
        self.settings = settings or ImportSettings()

    def resolve(
        self,
        gateway_status: str,
        duplicate_subscription: bool,
        missing_fields: Sequence[str],
        current: Optional[DonationStatus] = None,
    ) -> StatusDecision:
        """
        Resolve the status for one transaction.

        Args:
            gateway_status: Lower-cased status reported by the gateway.
            duplicate_subscription: Whether the detector flagged the row.
            missing_fields: Required fields that are absent, in reporting order.
            current: Status of the existing donation, if the row was seen before.

        Returns:
            StatusDecision with the status and every reason that applies.
        """
        gateway_status = (gateway_status or "").strip().lower()
        if gateway_status == "failed":
            return StatusDecision(status=DonationStatus.FAILED)

        reasons = []
        if duplicate_subscription:
            reasons.append(DUPLICATE_SUBSCRIPTION_REASON)
        if missing_fields:
            reasons.append(f"Missing required fields: {', '.join(missing_fields)}")
        if reasons:
            return StatusDecision(status=DonationStatus.NEEDS_ATTENTION, reasons=reasons)

        reversal = REVERSAL_STATUSES.get(gateway_status)
        if reversal is not None:
            if current in (DonationStatus.SUCCEEDED, reversal):
                return StatusDecision(status=reversal)
            return StatusDecision(
                status=DonationStatus.NEEDS_ATTENTION,
                reasons=[f"Gateway reported {gateway_status} for a donation with no recorded success"],
            )

        if gateway_status == "succeeded":
            return StatusDecision(status=DonationStatus.SUCCEEDED)

        logger.warning(f"Unrecognized gateway status: {gateway_status!r}")
        return StatusDecision(
            status=DonationStatus.NEEDS_ATTENTION,
            reasons=[f"Unrecognized gateway status: {gateway_status or '(blank)'}"],
        )

    def can_transition(self, current: DonationStatus, target: DonationStatus) -> bool:
        """Whether a re-import may move an existing donation from current to target."""
        if target in FORWARD_TRANSITIONS.get(current, frozenset()):
            return True
        if current == DonationStatus.NEEDS_ATTENTION and target == DonationStatus.SUCCEEDED:
            return self.settings.allow_attention_recovery
        return False
