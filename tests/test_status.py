"""Tests for the donation status policy."""

import pytest

from donation_ledger.database.models import DonationStatus
from donation_ledger.importing.config import ImportSettings
from donation_ledger.importing.status import DUPLICATE_SUBSCRIPTION_REASON, StatusResolver


@pytest.fixture
def resolver():
    return StatusResolver()


class TestResolve:
    """Tests for StatusResolver.resolve priority order."""

    def test_succeeded(self, resolver):
        decision = resolver.resolve("succeeded", False, [])

        assert decision.status == DonationStatus.SUCCEEDED
        assert decision.reason is None

    def test_failed_wins_over_everything(self, resolver):
        decision = resolver.resolve("failed", True, ["donor", "amount"])

        assert decision.status == DonationStatus.FAILED
        assert decision.reasons == []

    def test_duplicate_subscription(self, resolver):
        decision = resolver.resolve("succeeded", True, [])

        assert decision.status == DonationStatus.NEEDS_ATTENTION
        assert decision.reason == DUPLICATE_SUBSCRIPTION_REASON

    def test_missing_fields_listed(self, resolver):
        decision = resolver.resolve("succeeded", False, ["donor", "amount"])

        assert decision.status == DonationStatus.NEEDS_ATTENTION
        assert decision.reason == "Missing required fields: donor, amount"

    def test_reasons_accumulate(self, resolver):
        decision = resolver.resolve("succeeded", True, ["amount"])

        assert decision.reasons == [
            DUPLICATE_SUBSCRIPTION_REASON,
            "Missing required fields: amount",
        ]

    def test_refund_of_succeeded_donation(self, resolver):
        decision = resolver.resolve("refunded", False, [], current=DonationStatus.SUCCEEDED)

        assert decision.status == DonationStatus.REFUNDED

    def test_refund_already_recorded(self, resolver):
        decision = resolver.resolve("refunded", False, [], current=DonationStatus.REFUNDED)

        assert decision.status == DonationStatus.REFUNDED

    @pytest.mark.parametrize("gateway_status", ["refunded", "canceled"])
    def test_reversal_without_prior_success_needs_attention(self, resolver, gateway_status):
        decision = resolver.resolve(gateway_status, False, [])

        assert decision.status == DonationStatus.NEEDS_ATTENTION
        assert gateway_status in decision.reason

    def test_unknown_gateway_status(self, resolver):
        decision = resolver.resolve("pending", False, [])

        assert decision.status == DonationStatus.NEEDS_ATTENTION
        assert decision.reason == "Unrecognized gateway status: pending"

    def test_gateway_status_case_insensitive(self, resolver):
        assert resolver.resolve("Succeeded", False, []).status == DonationStatus.SUCCEEDED


class TestCanTransition:
    """Tests for forward-only transitions."""

    @pytest.mark.parametrize("target", [DonationStatus.REFUNDED, DonationStatus.CANCELED])
    def test_succeeded_can_be_reversed(self, resolver, target):
        assert resolver.can_transition(DonationStatus.SUCCEEDED, target)

    @pytest.mark.parametrize("current,target", [
        (DonationStatus.REFUNDED, DonationStatus.SUCCEEDED),
        (DonationStatus.CANCELED, DonationStatus.SUCCEEDED),
        (DonationStatus.SUCCEEDED, DonationStatus.FAILED),
        (DonationStatus.NEEDS_ATTENTION, DonationStatus.FAILED),
        (DonationStatus.FAILED, DonationStatus.SUCCEEDED),
        (DonationStatus.SUCCEEDED, DonationStatus.NEEDS_ATTENTION),
    ])
    def test_blocked_transitions(self, resolver, current, target):
        assert not resolver.can_transition(current, target)

    def test_attention_recovery_enabled_by_default(self, resolver):
        assert resolver.can_transition(DonationStatus.NEEDS_ATTENTION, DonationStatus.SUCCEEDED)

    def test_attention_recovery_can_be_disabled(self):
        resolver = StatusResolver(ImportSettings(allow_attention_recovery=False))

        assert not resolver.can_transition(DonationStatus.NEEDS_ATTENTION, DonationStatus.SUCCEEDED)
