"""SQLAlchemy implementation of the import ledger contract."""

import functools
import logging
from contextlib import asynccontextmanager
from datetime import date
from typing import AsyncGenerator, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ..importing.errors import PersistenceError
from ..importing.ledger import LedgerBase
from ..importing.models import (
    ChildRef,
    DonationKey,
    DonationRecord,
    DonorIdentity,
    DonorRef,
    FingerprintKey,
    ProjectRef,
    RecurringKey,
    SponsorshipRef,
    Transaction,
)
from .models import Child, Donation, DonationStatus, Donor, Project, ProjectType
from .repository import (
    ChildRepository,
    DonationRepository,
    DonationStatusChangeRepository,
    DonorRepository,
    InvoiceRepository,
    ProjectRepository,
    SponsorshipRepository,
)

logger = logging.getLogger(__name__)


def _persistence_errors(func):
    """Re-raise database failures as PersistenceError."""

    @functools.wraps(func)
    async def wrapper(*args, **kwargs):
        try:
            return await func(*args, **kwargs)
        except SQLAlchemyError as e:
            logger.error(f"Ledger operation {func.__name__} failed: {e}")
            raise PersistenceError(f"{func.__name__} failed: {e}") from e

    return wrapper


def _donor_ref(donor: Donor) -> DonorRef:
    return DonorRef(id=donor.id, email=donor.email, name=donor.name)


def _project_ref(project: Project) -> ProjectRef:
    return ProjectRef(id=project.id, title=project.title, project_type=project.project_type)


def _child_ref(child: Child) -> ChildRef:
    return ChildRef(id=child.id, name=child.name)


def _donation_record(donation: Donation) -> DonationRecord:
    return DonationRecord(
        id=donation.id,
        donor_id=donation.donor_id,
        project_id=donation.project_id,
        sponsorship_id=donation.sponsorship_id,
        child_id=donation.child_id,
        amount=donation.amount,
        date=donation.date,
        status=DonationStatus(donation.status),
        gateway_charge_id=donation.gateway_charge_id,
        gateway_customer_id=donation.gateway_customer_id,
        gateway_subscription_id=donation.gateway_subscription_id,
        gateway_invoice_id=donation.gateway_invoice_id,
        import_fingerprint=donation.import_fingerprint,
        duplicate_subscription_detected=donation.duplicate_subscription_detected,
        needs_attention_reason=donation.needs_attention_reason,
        source=donation.source,
    )


class SQLAlchemyLedger(LedgerBase):
    """
    Ledger backed by one AsyncSession. The session's transaction is the
    unit of work; this class only flushes, and commit or rollback is left
    to ledger_transaction().
    """

    def __init__(self, session: AsyncSession):
        self.session = session
        self.donors = DonorRepository(session)
        self.projects = ProjectRepository(session)
        self.children = ChildRepository(session)
        self.sponsorships = SponsorshipRepository(session)
        self.invoices = InvoiceRepository(session)
        self.donations = DonationRepository(session)
        self.status_changes = DonationStatusChangeRepository(session)

    @_persistence_errors
    async def find_or_create_donor(self, identity: DonorIdentity) -> DonorRef:
        contact = identity.model_dump(exclude={"email", "is_placeholder", "observed_at"})
        donor = await self.donors.get_by_email(identity.email)
        if donor is None:
            donor = await self.donors.create(
                identity.email,
                contact=contact,
                observed_at=identity.observed_at,
            )
        else:
            await self.donors.refresh_contact(donor, contact, identity.observed_at)
        return _donor_ref(donor)

    @_persistence_errors
    async def find_or_create_project(
        self,
        name: str,
        project_type: ProjectType = ProjectType.GENERAL,
        system: bool = False,
        description: Optional[str] = None,
    ) -> ProjectRef:
        project = await self.projects.get_by_title(name)
        if project is None:
            project = await self.projects.create(
                name,
                project_type=ProjectType(project_type).value,
                system=system,
                description=description,
            )
        return _project_ref(project)

    @_persistence_errors
    async def find_project(self, project_id: str) -> Optional[ProjectRef]:
        project = await self.projects.get_by_id(project_id)
        return _project_ref(project) if project else None

    @_persistence_errors
    async def find_or_create_child(self, name: str) -> ChildRef:
        child = await self.children.get_by_name(name)
        if child is None:
            child = await self.children.create(name)
        return _child_ref(child)

    @_persistence_errors
    async def find_child(self, child_id: str) -> Optional[ChildRef]:
        child = await self.children.get_by_id(child_id)
        return _child_ref(child) if child else None

    @_persistence_errors
    async def find_or_create_sponsorship(
        self,
        donor: DonorRef,
        child: ChildRef,
        monthly_amount: int = 0,
        subscription_id: Optional[str] = None,
        start_date: Optional[date] = None,
    ) -> SponsorshipRef:
        sponsorship = await self.sponsorships.get_by_donor_and_child(donor.id, child.id)
        if sponsorship is None:
            sponsorship = await self.sponsorships.create(
                donor.id,
                child.id,
                monthly_amount=monthly_amount,
                gateway_subscription_id=subscription_id,
                start_date=start_date,
            )
        elif subscription_id and not sponsorship.gateway_subscription_id:
            sponsorship.gateway_subscription_id = subscription_id
            await self.session.flush()
        return SponsorshipRef(
            id=sponsorship.id,
            donor_id=sponsorship.donor_id,
            child_id=sponsorship.child_id,
        )

    @_persistence_errors
    async def find_or_create_invoice(self, txn: Transaction) -> Optional[str]:
        if not txn.invoice_id:
            return None
        invoice = await self.invoices.get_by_invoice_id(txn.invoice_id)
        if invoice is None:
            invoice = await self.invoices.create(
                txn.invoice_id,
                gateway_charge_id=txn.charge_id,
                gateway_customer_id=txn.customer_id,
                gateway_subscription_id=txn.subscription_id,
                total_amount=txn.amount,
                invoice_date=txn.transaction_date,
            )
        return invoice.gateway_invoice_id

    @_persistence_errors
    async def find_donation(self, key: DonationKey) -> Optional[DonationRecord]:
        if isinstance(key, RecurringKey):
            donation = await self.donations.find_recurring(
                key.invoice_id,
                key.subscription_id,
                key.child_id,
            )
        elif isinstance(key, FingerprintKey):
            donation = await self.donations.find_by_fingerprint(
                key.fingerprint,
                key.project_id,
                key.child_id,
            )
        else:
            donation = await self.donations.find_one_time(
                key.charge_id,
                key.project_id,
                key.child_id,
                key.donor_id,
            )
        return _donation_record(donation) if donation else None

    @_persistence_errors
    async def find_subscription_conflict(
        self,
        invoice_id: Optional[str],
        child_id: str,
        subscription_id: str,
    ) -> Optional[DonationRecord]:
        donation = await self.donations.find_subscription_conflict(
            invoice_id,
            child_id,
            subscription_id,
        )
        return _donation_record(donation) if donation else None

    @_persistence_errors
    async def upsert_donation(self, record: DonationRecord) -> DonationRecord:
        """
        Insert a donation, or apply a status change to an existing one.

        Every status write is mirrored in the status history.

        Raises:
            PersistenceError: If the record has neither donor nor beneficiary,
                or names a donation that does not exist.
        """
        if record.donor_id is None and record.project_id is None and record.child_id is None:
            raise PersistenceError("A donation needs a donor or a beneficiary")

        status = DonationStatus(record.status).value
        reason = record.needs_attention_reason

        if record.id is None:
            fields = record.model_dump(exclude={"id"})
            fields["status"] = status
            donation = await self.donations.create(**fields)
            await self.status_changes.create(donation.id, status, reason=reason)
            return _donation_record(donation)

        donation = await self.donations.get_by_id(record.id)
        if donation is None:
            raise PersistenceError(f"Donation {record.id} not found")

        previous_status = donation.status
        donation.duplicate_subscription_detected = record.duplicate_subscription_detected
        if previous_status != status:
            await self.donations.update_status(donation, status, reason)
            await self.status_changes.create(
                donation.id,
                status,
                previous_status=previous_status,
                reason=reason,
            )
        else:
            donation.needs_attention_reason = reason
            await self.session.flush()
        return _donation_record(donation)


@asynccontextmanager
async def ledger_transaction(
    session_factory: async_sessionmaker[AsyncSession],
) -> AsyncGenerator[SQLAlchemyLedger, None]:
    """
    Open one atomic ledger scope.

    Commits when the block exits cleanly and rolls back on any exception.

    Example:
        async with ledger_transaction(factory) as ledger:
            donor = await ledger.find_or_create_donor(identity)
    """
    async with session_factory() as session:
        try:
            yield SQLAlchemyLedger(session)
        except Exception:
            await session.rollback()
            raise
        try:
            await session.commit()
        except SQLAlchemyError as e:
            await session.rollback()
            raise PersistenceError(f"Commit failed: {e}") from e
