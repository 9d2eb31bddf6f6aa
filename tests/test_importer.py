"""Tests for the batch importer."""

import pytest
from sqlalchemy import func, select

from donation_ledger.database import Child, Donation, DonationStatusChange, Project, Sponsorship
from donation_ledger.importing.importer import BatchImporter, MAX_RAW_VALUE_LENGTH, sanitize_row
from donation_ledger.importing.profiles import STRIPE_EXPORT

NO_CONTACT = {
    "Cust Email": "",
    "Billing Details Email": "",
    "Billing Details Name": "",
    "Cust Phone": "",
    "Billing Details Address Line 1": "",
    "Billing Details Address City": "",
    "Billing Detail Address State": "",
    "Billing Details Address Postal Code": "",
    "Billing Details Address Country": "",
}


@pytest.fixture
def importer(ledger_scope):
    return BatchImporter(ledger_scope, STRIPE_EXPORT)


@pytest.fixture
def sponsorship_rows(stripe_row):
    """One general gift, then two subscriptions billing the same child on one invoice."""
    return [
        stripe_row(**{"Transaction ID": "ch_1", "Description": "General Monthly Donation"}),
        stripe_row(**{
            "Transaction ID": "ch_2",
            "Amount": "35.00",
            "Cust Subscription Data ID": "sub_A",
            "Cust Subscription Data Plan Nickname": "Monthly Sponsorship for Maria",
            "Description": "Subscription update",
        }),
        stripe_row(**{
            "Transaction ID": "ch_2",
            "Amount": "35.00",
            "Cust Subscription Data ID": "sub_B",
            "Cust Subscription Data Plan Nickname": "Monthly Sponsorship for Maria",
            "Description": "Subscription update",
        }),
    ]


async def fetch_donations(session_factory):
    async with session_factory() as session:
        result = await session.execute(select(Donation).order_by(Donation.created_at))
        return list(result.scalars().all())


async def count(session_factory, model):
    async with session_factory() as session:
        return await session.scalar(select(func.count()).select_from(model))


class TestEndToEnd:
    """Tests for a complete import run."""

    async def test_three_row_run(self, importer, sponsorship_rows, session_factory):
        summary = await importer.run(sponsorship_rows)

        assert summary.total_rows == 3
        assert summary.succeeded_count == 2
        assert summary.needs_attention_count == 1
        assert summary.skipped_count == 0
        assert summary.failed_count == 0
        assert summary.errors == []
        assert summary.completed_at is not None

        async with session_factory() as session:
            maria = (await session.execute(select(Child).where(Child.name == "Maria"))).scalar_one()
            result = await session.execute(select(Donation).where(Donation.child_id == maria.id))
            maria_donations = list(result.scalars().all())

        assert len(maria_donations) == 2
        flagged = [d for d in maria_donations if d.duplicate_subscription_detected]
        assert len(flagged) == 1
        assert flagged[0].gateway_subscription_id == "sub_B"
        assert flagged[0].status == "needs_attention"
        assert flagged[0].needs_attention_reason == "Duplicate subscription for child on the same invoice"

        untouched = [d for d in maria_donations if not d.duplicate_subscription_detected][0]
        assert untouched.status == "succeeded"
        assert untouched.sponsorship_id is not None
        assert untouched.gateway_invoice_id == "ch_2"

    async def test_general_gift_is_attributed_to_general_project(self, importer, stripe_row, session_factory):
        await importer.run([stripe_row()])

        donation = (await fetch_donations(session_factory))[0]
        async with session_factory() as session:
            project = await session.get(Project, donation.project_id)
        assert project.title == "General Donation"
        assert donation.amount == 5000
        assert donation.child_id is None


class TestIdempotence:
    """Tests for re-running the same input."""

    async def test_second_run_changes_nothing(self, importer, sponsorship_rows, session_factory):
        await importer.run(sponsorship_rows)
        before = {(d.id, d.status) for d in await fetch_donations(session_factory)}
        history_before = await count(session_factory, DonationStatusChange)

        summary = await importer.run(sponsorship_rows)

        assert summary.skipped_count == 3
        assert summary.succeeded_count == 0
        assert summary.needs_attention_count == 0
        assert {(d.id, d.status) for d in await fetch_donations(session_factory)} == before
        assert await count(session_factory, DonationStatusChange) == history_before
        assert await count(session_factory, Sponsorship) == 1

    async def test_recurring_general_gift_second_run(self, importer, stripe_row, session_factory):
        row = stripe_row(**{
            "Cust Subscription Data ID": "sub_G",
            "Cust Subscription Data Plan Nickname": "$25 - General Monthly Donation",
            "Amount": "25.00",
        })

        first = await importer.run([row])
        second = await importer.run([row])

        assert first.succeeded_count == 1
        assert second.succeeded_count == 0
        assert second.skipped_count == 1
        donations = await fetch_donations(session_factory)
        assert len(donations) == 1
        assert donations[0].gateway_subscription_id == "sub_G"

    async def test_row_without_charge_id_second_run(self, importer, stripe_row, session_factory):
        row = stripe_row(**{"Transaction ID": ""})

        first = await importer.run([row])
        second = await importer.run([row])

        assert first.needs_attention_count == 1
        assert second.needs_attention_count == 0
        assert second.skipped_count == 1
        donations = await fetch_donations(session_factory)
        assert len(donations) == 1
        assert donations[0].import_fingerprint is not None
        assert donations[0].needs_attention_reason == "Missing required fields: charge_id"

    async def test_identical_rows_without_charge_id_stay_distinct(self, importer, stripe_row, session_factory):
        rows = [stripe_row(**{"Transaction ID": ""}), stripe_row(**{"Transaction ID": ""})]

        first = await importer.run(rows)
        second = await importer.run(rows)

        assert first.needs_attention_count == 2
        assert second.skipped_count == 2
        donations = await fetch_donations(session_factory)
        assert len(donations) == 2
        assert len({d.import_fingerprint for d in donations}) == 2


class TestMultiBeneficiary:
    """Tests for invoices covering several children."""

    async def test_one_donation_per_child_on_shared_invoice(self, importer, stripe_row, session_factory):
        rows = [
            stripe_row(**{
                "Transaction ID": "in_7",
                "Cust Subscription Data ID": "sub_A",
                "Cust Subscription Data Plan Nickname": label,
            })
            for label in ("Sponsorship for Maria", "Sponsorship for Tomas", "Sponsorship for Maria")
        ]

        summary = await importer.run(rows)

        assert summary.succeeded_count == 2
        assert summary.skipped_count == 1
        donations = await fetch_donations(session_factory)
        assert len(donations) == 2
        assert {d.gateway_invoice_id for d in donations} == {"in_7"}
        assert len({d.child_id for d in donations}) == 2
        assert not any(d.duplicate_subscription_detected for d in donations)

    async def test_one_row_sponsoring_two_children(self, importer, stripe_row, session_factory):
        row = stripe_row(**{
            "Cust Subscription Data ID": "sub_W",
            "Cust Subscription Data Plan Nickname": "Monthly Sponsorship Donation for Wan, Orawan",
            "Description": "Subscription update",
        })

        summary = await importer.run([row])

        assert summary.total_rows == 1
        assert summary.succeeded_count == 2
        donations = await fetch_donations(session_factory)
        assert len(donations) == 2
        async with session_factory() as session:
            names = set((await session.execute(select(Child.name))).scalars().all())
        assert names == {"Wan", "Orawan"}
        assert all(d.amount == 5000 for d in donations)
        assert all(d.sponsorship_id is not None for d in donations)
        assert await count(session_factory, Sponsorship) == 2

        again = await importer.run([row])
        assert again.skipped_count == 2
        assert len(await fetch_donations(session_factory)) == 2


class TestNeverDiscard:
    """Tests for rows with missing data."""

    async def test_blank_amount_and_donor_still_recorded(self, importer, stripe_row, session_factory):
        summary = await importer.run([stripe_row(Amount="", **NO_CONTACT)])

        assert summary.needs_attention_count == 1
        donations = await fetch_donations(session_factory)
        assert len(donations) == 1
        assert donations[0].status == "needs_attention"
        assert donations[0].donor_id is None
        assert donations[0].amount == 0
        assert donations[0].needs_attention_reason == "Missing required fields: donor, amount"

    async def test_fixed_row_recovers(self, importer, stripe_row, session_factory):
        await importer.run([stripe_row(Amount="")])

        summary = await importer.run([stripe_row(Amount="50.00")])

        assert summary.succeeded_count == 1
        donations = await fetch_donations(session_factory)
        assert len(donations) == 1
        assert donations[0].status == "succeeded"
        assert donations[0].needs_attention_reason is None


class TestStatusTransitions:
    """Tests for status changes on re-import."""

    async def test_refund_moves_forward_once(self, importer, stripe_row, session_factory):
        await importer.run([stripe_row()])

        refunded = await importer.run([stripe_row(Status="refunded")])
        again = await importer.run([stripe_row(Status="refunded")])

        assert refunded.needs_attention_count == 1
        assert again.skipped_count == 1
        donations = await fetch_donations(session_factory)
        assert len(donations) == 1
        assert donations[0].status == "refunded"
        assert await count(session_factory, DonationStatusChange) == 2

    async def test_refund_never_returns_to_succeeded(self, importer, stripe_row, session_factory):
        await importer.run([stripe_row()])
        await importer.run([stripe_row(Status="refunded")])

        summary = await importer.run([stripe_row(Status="succeeded")])

        assert summary.skipped_count == 1
        assert (await fetch_donations(session_factory))[0].status == "refunded"

    async def test_first_seen_refund_needs_attention(self, importer, stripe_row, session_factory):
        summary = await importer.run([stripe_row(Status="refunded")])

        assert summary.needs_attention_count == 1
        assert (await fetch_donations(session_factory))[0].status == "needs_attention"

    async def test_failed_payment(self, importer, stripe_row, session_factory):
        summary = await importer.run([stripe_row(Status="failed")])

        assert summary.failed_count == 1
        assert (await fetch_donations(session_factory))[0].status == "failed"

    async def test_succeeded_is_never_moved_to_failed(self, importer, stripe_row, session_factory):
        await importer.run([stripe_row()])

        summary = await importer.run([stripe_row(Status="failed")])

        assert summary.skipped_count == 1
        assert (await fetch_donations(session_factory))[0].status == "succeeded"


class TestRunControl:
    """Tests for errors, fallbacks and cooperative stops."""

    async def test_bad_row_is_recorded_and_batch_continues(self, importer, stripe_row, session_factory):
        rows = [stripe_row(), ["not", "a", "mapping"], stripe_row(**{"Transaction ID": "ch_2"})]

        summary = await importer.run(rows)

        assert summary.total_rows == 3
        assert summary.succeeded_count == 2
        assert len(summary.errors) == 1
        assert summary.errors[0].row_index == 2
        assert "Row 2" in summary.errors[0].message
        assert summary.errors[0].raw_row == {"value": "['not', 'a', 'mapping']"}
        assert len(await fetch_donations(session_factory)) == 2

    async def test_unknown_metadata_id_falls_back_to_text(self, importer, stripe_row, session_factory):
        row = stripe_row(Description="Tshirt", metadata='{"child_id": "no-such-child"}')

        summary = await importer.run([row])

        assert summary.succeeded_count == 1
        donation = (await fetch_donations(session_factory))[0]
        async with session_factory() as session:
            project = await session.get(Project, donation.project_id)
        assert project.title == "Tshirt"

    async def test_should_continue_stops_between_rows(self, importer, stripe_row, session_factory):
        checks = []

        def should_continue():
            checks.append(True)
            return len(checks) <= 1

        rows = [stripe_row(), stripe_row(**{"Transaction ID": "ch_2"})]
        summary = await importer.run(rows, should_continue=should_continue)

        assert summary.aborted
        assert summary.total_rows == 1
        assert summary.succeeded_count == 1
        assert len(await fetch_donations(session_factory)) == 1

        resumed = await importer.run(rows)
        assert resumed.skipped_count == 1
        assert resumed.succeeded_count == 1


class TestSanitizeRow:
    """Tests for raw-row sanitizing."""

    def test_values_become_bounded_strings(self):
        row = sanitize_row({"Amount": 50, "Description": "x" * 600, "metadata": None})

        assert row["Amount"] == "50"
        assert len(row["Description"]) == MAX_RAW_VALUE_LENGTH
        assert row["metadata"] == ""
