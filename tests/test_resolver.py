"""Tests for donor and beneficiary resolution."""

import pytest
from datetime import date, datetime
from sqlalchemy import func, select

from donation_ledger.database import Child, Donor, Project, Sponsorship
from donation_ledger.database.models import ProjectType
from donation_ledger.importing.errors import ClassificationAmbiguity
from donation_ledger.importing.models import (
    ChildBeneficiary,
    DonorContact,
    GeneralBeneficiary,
    ProjectBeneficiary,
    Transaction,
)
from donation_ledger.importing.resolver import EntityResolver


def make_txn(**contact) -> Transaction:
    return Transaction(
        row_index=1,
        charge_id="ch_1",
        subscription_id="sub_1",
        customer_id="cus_1",
        amount=2500,
        transaction_date=date(2025, 3, 1),
        transaction_time=datetime(2025, 3, 1, 10, 15),
        contact=DonorContact(**contact),
    )


class TestDonorIdentity:
    """Tests for the pure identity computation."""

    def test_primary_email(self):
        identity = EntityResolver(None).donor_identity(
            make_txn(email="Jane@Example.org", billing_email="billing@example.org")
        )

        assert identity.email == "jane@example.org"
        assert not identity.is_placeholder
        assert identity.gateway_customer_id == "cus_1"

    def test_billing_email_fallback(self):
        identity = EntityResolver(None).donor_identity(make_txn(billing_email="billing@example.org"))

        assert identity.email == "billing@example.org"

    def test_placeholder_is_deterministic(self):
        resolver = EntityResolver(None)
        first = resolver.donor_identity(make_txn(name="Jane Donor", phone="555-0100"))
        second = resolver.donor_identity(make_txn(name="  jane   DONOR ", phone="555-0100"))

        assert first.is_placeholder
        assert first.email == second.email
        assert first.email.startswith("anonymous-")
        assert first.email.endswith("@donors.invalid")

    def test_placeholder_differs_by_address(self):
        resolver = EntityResolver(None)
        first = resolver.donor_identity(make_txn(name="Jane Donor", address_line1="1 Main St"))
        second = resolver.donor_identity(make_txn(name="Jane Donor", address_line1="2 Main St"))

        assert first.email != second.email

    def test_no_contact_details(self):
        assert EntityResolver(None).donor_identity(make_txn()) is None


class TestResolveDonor:
    """Tests for donor lookup against the ledger."""

    async def test_creates_then_reuses_case_insensitively(self, ledger_scope, session_factory):
        async with ledger_scope() as ledger:
            first = await EntityResolver(ledger).resolve_donor(make_txn(email="jane@example.org"))
        async with ledger_scope() as ledger:
            second = await EntityResolver(ledger).resolve_donor(make_txn(email="JANE@example.org"))

        assert first.id == second.id
        async with session_factory() as session:
            count = await session.scalar(select(func.count()).select_from(Donor))
        assert count == 1

    async def test_missing_identity_returns_none(self, ledger_scope):
        async with ledger_scope() as ledger:
            assert await EntityResolver(ledger).resolve_donor(make_txn()) is None


class TestResolveBeneficiary:
    """Tests for mapping beneficiaries to ledger entities."""

    async def test_general_uses_system_project(self, ledger_scope, session_factory):
        async with ledger_scope() as ledger:
            resolver = EntityResolver(ledger)
            first = await resolver.resolve_beneficiary(GeneralBeneficiary())
            second = await resolver.resolve_beneficiary(GeneralBeneficiary())

        assert first.project.id == second.project.id
        assert first.project.title == "General Donation"
        async with session_factory() as session:
            project = await session.get(Project, first.project.id)
        assert project.system is True

    async def test_named_project_records_source_text(self, ledger_scope, session_factory):
        async with ledger_scope() as ledger:
            resolved = await EntityResolver(ledger).resolve_beneficiary(
                ProjectBeneficiary(name="Tshirt", source_text="Tshirt")
            )

        async with session_factory() as session:
            project = await session.get(Project, resolved.project.id)
        assert project.title == "Tshirt"
        assert project.description == "Auto-created from import. Original description: Tshirt"

    async def test_campaign_project_type(self, ledger_scope):
        async with ledger_scope() as ledger:
            resolved = await EntityResolver(ledger).resolve_beneficiary(
                ProjectBeneficiary(name="Campaign Alpha", project_type=ProjectType.CAMPAIGN)
            )

        assert resolved.project.project_type == "campaign"

    async def test_child_by_name(self, ledger_scope):
        async with ledger_scope() as ledger:
            resolver = EntityResolver(ledger)
            first = await resolver.resolve_beneficiary(ChildBeneficiary(name="Maria"))
            second = await resolver.resolve_beneficiary(ChildBeneficiary(name="Maria"))

        assert first.child.id == second.child.id
        assert first.project is None

    async def test_known_child_id(self, ledger_scope, session_factory):
        async with session_factory() as session:
            child = Child(name="Tomas")
            session.add(child)
            await session.commit()

        async with ledger_scope() as ledger:
            resolved = await EntityResolver(ledger).resolve_beneficiary(ChildBeneficiary(child_id=child.id))

        assert resolved.child.name == "Tomas"

    @pytest.mark.parametrize("beneficiary", [
        ChildBeneficiary(child_id="missing-child"),
        ProjectBeneficiary(project_id="missing-project"),
    ])
    async def test_unknown_id_is_ambiguous(self, ledger_scope, beneficiary):
        async with ledger_scope() as ledger:
            with pytest.raises(ClassificationAmbiguity) as exc_info:
                await EntityResolver(ledger).resolve_beneficiary(beneficiary)

        assert exc_info.value.identifier.startswith("missing-")


class TestEnsureSponsorship:
    """Tests for the explicit sponsorship step."""

    async def test_creates_once(self, ledger_scope, session_factory):
        txn = make_txn(email="jane@example.org")
        async with ledger_scope() as ledger:
            resolver = EntityResolver(ledger)
            donor = await resolver.resolve_donor(txn)
            child = (await resolver.resolve_beneficiary(ChildBeneficiary(name="Maria"))).child
            first = await resolver.ensure_sponsorship(donor, child, txn)
            second = await resolver.ensure_sponsorship(donor, child, txn)

        assert first.id == second.id
        async with session_factory() as session:
            sponsorship = await session.get(Sponsorship, first.id)
        assert sponsorship.gateway_subscription_id == "sub_1"
        assert sponsorship.monthly_amount == 2500
        assert sponsorship.start_date == date(2025, 3, 1)

    async def test_without_donor(self, ledger_scope):
        async with ledger_scope() as ledger:
            resolver = EntityResolver(ledger)
            child = (await resolver.resolve_beneficiary(ChildBeneficiary(name="Maria"))).child

            assert await resolver.ensure_sponsorship(None, child, make_txn()) is None
