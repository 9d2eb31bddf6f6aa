"""Repository layer for donation ledger persistence operations."""

import logging
from datetime import date, datetime
from typing import Optional, Dict, Any

from sqlalchemy import select, and_, func
from sqlalchemy.ext.asyncio import AsyncSession

from .models import (
    Child,
    Donation,
    DonationStatus,
    DonationStatusChange,
    Donor,
    Invoice,
    Project,
    ProjectType,
    Sponsorship,
)

logger = logging.getLogger(__name__)

# Donor fields a newer transaction may refresh
DONOR_CONTACT_FIELDS = (
    "name",
    "phone",
    "address_line1",
    "address_line2",
    "city",
    "state",
    "zip_code",
    "country",
    "gateway_customer_id",
)


def _eq_or_null(column, value):
    return column.is_(None) if value is None else column == value


class DonorRepository:
    """Repository for Donor lookups and writes."""

    def __init__(self, session: AsyncSession):
        """Initialize the repository with a database session.

        Args:
            session: AsyncSession instance for database operations.
        """
        self.session = session

    async def get_by_email(self, email: str) -> Optional[Donor]:
        """Get a donor by email, ignoring case.

        Args:
            email: Email address.

        Returns:
            Donor instance if found, None otherwise.
        """
        result = await self.session.execute(
            select(Donor).where(func.lower(Donor.email) == email.lower()).limit(1)
        )
        return result.scalars().first()

    async def create(
        self,
        email: str,
        contact: Optional[Dict[str, Any]] = None,
        observed_at: Optional[datetime] = None,
    ) -> Donor:
        """Create a new donor record.

        Args:
            email: Unique email (real or placeholder).
            contact: Optional contact fields (name, phone, address...).
            observed_at: Time of the transaction the details came from.

        Returns:
            Created Donor instance.
        """
        fields = {k: v for k, v in (contact or {}).items() if k in DONOR_CONTACT_FIELDS and v}
        donor = Donor(email=email, last_updated_at=observed_at, **fields)
        self.session.add(donor)
        await self.session.flush()

        logger.info(f"Created donor {donor.id}")
        return donor

    async def refresh_contact(
        self,
        donor: Donor,
        contact: Dict[str, Any],
        observed_at: Optional[datetime],
    ) -> bool:
        """Update contact fields when the transaction is newer than the last update.

        Blank incoming values never overwrite stored ones.

        Args:
            donor: Donor to update.
            contact: Incoming contact fields.
            observed_at: Time of the transaction carrying the details.

        Returns:
            True if the donor was updated.
        """
        if observed_at is None:
            return False
        if donor.last_updated_at is not None and observed_at <= donor.last_updated_at:
            return False

        for field in DONOR_CONTACT_FIELDS:
            value = contact.get(field)
            if value:
                setattr(donor, field, value)
        donor.last_updated_at = observed_at
        await self.session.flush()
        logger.debug(f"Refreshed contact details for donor {donor.id}")
        return True


class ProjectRepository:
    """Repository for Project lookups and writes."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_by_id(self, project_id: str) -> Optional[Project]:
        result = await self.session.execute(
            select(Project).where(Project.id == project_id)
        )
        return result.scalar_one_or_none()

    async def get_by_title(self, title: str) -> Optional[Project]:
        result = await self.session.execute(
            select(Project).where(Project.title == title)
        )
        return result.scalar_one_or_none()

    async def create(
        self,
        title: str,
        project_type: str = ProjectType.GENERAL.value,
        system: bool = False,
        description: Optional[str] = None,
    ) -> Project:
        """Create a new project.

        Args:
            title: Unique project title.
            project_type: One of the ProjectType values.
            system: True for built-in projects such as the general fund.
            description: Optional description.

        Returns:
            Created Project instance.
        """
        project = Project(
            title=title,
            project_type=project_type,
            system=system,
            description=description,
        )
        self.session.add(project)
        await self.session.flush()

        logger.info(f"Created {project_type} project {project.id} '{title}'")
        return project


class ChildRepository:
    """Repository for Child lookups and writes."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_by_id(self, child_id: str) -> Optional[Child]:
        result = await self.session.execute(
            select(Child).where(Child.id == child_id)
        )
        return result.scalar_one_or_none()

    async def get_by_name(self, name: str) -> Optional[Child]:
        """Get the oldest child with this name."""
        result = await self.session.execute(
            select(Child).where(Child.name == name).order_by(Child.created_at).limit(1)
        )
        return result.scalars().first()

    async def create(self, name: str) -> Child:
        child = Child(name=name)
        self.session.add(child)
        await self.session.flush()

        logger.info(f"Created child {child.id} '{name}'")
        return child


class SponsorshipRepository:
    """Repository for Sponsorship lookups and writes."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_by_donor_and_child(self, donor_id: str, child_id: str) -> Optional[Sponsorship]:
        result = await self.session.execute(
            select(Sponsorship).where(
                and_(
                    Sponsorship.donor_id == donor_id,
                    Sponsorship.child_id == child_id,
                )
            )
        )
        return result.scalar_one_or_none()

    async def create(
        self,
        donor_id: str,
        child_id: str,
        monthly_amount: int = 0,
        gateway_subscription_id: Optional[str] = None,
        start_date: Optional[date] = None,
    ) -> Sponsorship:
        """Create a sponsorship linking a donor to a child.

        Args:
            donor_id: Sponsoring donor.
            child_id: Sponsored child.
            monthly_amount: Recurring amount in minor units.
            gateway_subscription_id: Subscription that funds the sponsorship.
            start_date: Date of the first recorded charge.

        Returns:
            Created Sponsorship instance.
        """
        sponsorship = Sponsorship(
            donor_id=donor_id,
            child_id=child_id,
            monthly_amount=monthly_amount,
            gateway_subscription_id=gateway_subscription_id,
            start_date=start_date,
        )
        self.session.add(sponsorship)
        await self.session.flush()

        logger.info(f"Created sponsorship {sponsorship.id} for donor {donor_id} and child {child_id}")
        return sponsorship


class InvoiceRepository:
    """Repository for Invoice lookups and writes."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_by_invoice_id(self, gateway_invoice_id: str) -> Optional[Invoice]:
        result = await self.session.execute(
            select(Invoice).where(Invoice.gateway_invoice_id == gateway_invoice_id)
        )
        return result.scalar_one_or_none()

    async def create(
        self,
        gateway_invoice_id: str,
        gateway_charge_id: Optional[str] = None,
        gateway_customer_id: Optional[str] = None,
        gateway_subscription_id: Optional[str] = None,
        total_amount: int = 0,
        invoice_date: Optional[date] = None,
    ) -> Invoice:
        invoice = Invoice(
            gateway_invoice_id=gateway_invoice_id,
            gateway_charge_id=gateway_charge_id,
            gateway_customer_id=gateway_customer_id,
            gateway_subscription_id=gateway_subscription_id,
            total_amount=total_amount,
            invoice_date=invoice_date,
        )
        self.session.add(invoice)
        await self.session.flush()

        logger.debug(f"Created invoice {gateway_invoice_id}")
        return invoice


class DonationRepository:
    """Repository for Donation lookups and writes."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_by_id(self, donation_id: str) -> Optional[Donation]:
        result = await self.session.execute(
            select(Donation).where(Donation.id == donation_id)
        )
        return result.scalar_one_or_none()

    async def find_recurring(
        self,
        invoice_id: Optional[str],
        subscription_id: str,
        child_id: str,
    ) -> Optional[Donation]:
        """Find the donation recorded for a subscription and child on an invoice.

        Args:
            invoice_id: Gateway invoice ID (None matches donations without one).
            subscription_id: Gateway subscription ID.
            child_id: Sponsored child.

        Returns:
            Donation instance if found, None otherwise.
        """
        result = await self.session.execute(
            select(Donation)
            .where(
                and_(
                    _eq_or_null(Donation.gateway_invoice_id, invoice_id),
                    Donation.gateway_subscription_id == subscription_id,
                    Donation.child_id == child_id,
                )
            )
            .order_by(Donation.created_at)
            .limit(1)
        )
        return result.scalars().first()

    async def find_one_time(
        self,
        charge_id: str,
        project_id: Optional[str],
        child_id: Optional[str],
        donor_id: Optional[str],
    ) -> Optional[Donation]:
        """Find a donation by charge and what it funds.

        A charge funding a project or child matches on that beneficiary;
        otherwise it matches on the donor. Subscription charges funding a
        project are found here too.

        Args:
            charge_id: Gateway charge ID.
            project_id: Funded project, if any.
            child_id: Funded child, if any.
            donor_id: Donor, used when neither project nor child applies.

        Returns:
            Donation instance if found, None otherwise.
        """
        conditions = [
            Donation.gateway_charge_id == charge_id,
            _eq_or_null(Donation.project_id, project_id),
            _eq_or_null(Donation.child_id, child_id),
        ]
        if project_id is None and child_id is None:
            conditions.append(_eq_or_null(Donation.donor_id, donor_id))

        result = await self.session.execute(
            select(Donation)
            .where(and_(*conditions))
            .order_by(Donation.created_at)
            .limit(1)
        )
        return result.scalars().first()

    async def find_by_fingerprint(
        self,
        fingerprint: str,
        project_id: Optional[str],
        child_id: Optional[str],
    ) -> Optional[Donation]:
        """Find a charge-less donation by its import fingerprint and beneficiary."""
        result = await self.session.execute(
            select(Donation)
            .where(
                and_(
                    Donation.import_fingerprint == fingerprint,
                    _eq_or_null(Donation.project_id, project_id),
                    _eq_or_null(Donation.child_id, child_id),
                )
            )
            .order_by(Donation.created_at)
            .limit(1)
        )
        return result.scalars().first()

    async def find_subscription_conflict(
        self,
        invoice_id: Optional[str],
        child_id: str,
        subscription_id: str,
    ) -> Optional[Donation]:
        """Find a donation for the same invoice and child under a different subscription."""
        if invoice_id is None:
            return None
        result = await self.session.execute(
            select(Donation)
            .where(
                and_(
                    Donation.gateway_invoice_id == invoice_id,
                    Donation.child_id == child_id,
                    Donation.gateway_subscription_id.is_not(None),
                    Donation.gateway_subscription_id != subscription_id,
                )
            )
            .order_by(Donation.created_at)
            .limit(1)
        )
        return result.scalars().first()

    async def create(self, **fields: Any) -> Donation:
        """Create a new donation record.

        Args:
            **fields: Donation column values.

        Returns:
            Created Donation instance.
        """
        donation = Donation(**fields)
        self.session.add(donation)
        await self.session.flush()

        logger.info(f"Created donation {donation.id} with status {donation.status}")
        return donation

    async def update_status(
        self,
        donation: Donation,
        new_status: str,
        needs_attention_reason: Optional[str] = None,
    ) -> Donation:
        """Update the status of a donation.

        Args:
            donation: Donation instance to update.
            new_status: New donation status.
            needs_attention_reason: Reason text; cleared when the new status is not needs_attention.

        Returns:
            Updated Donation instance.
        """
        donation.status = new_status
        if new_status == DonationStatus.NEEDS_ATTENTION.value:
            donation.needs_attention_reason = needs_attention_reason
        else:
            donation.needs_attention_reason = None
        donation.updated_at = datetime.utcnow()

        await self.session.flush()
        logger.info(f"Updated donation {donation.id} status to {new_status}")
        return donation


class DonationStatusChangeRepository:
    """Repository for the donation status audit trail."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def create(
        self,
        donation_id: str,
        new_status: str,
        previous_status: Optional[str] = None,
        reason: Optional[str] = None,
    ) -> DonationStatusChange:
        """Record a status transition.

        Args:
            donation_id: Donation the change applies to.
            new_status: Status after the change.
            previous_status: Status before the change (None on creation).
            reason: Optional reason text.

        Returns:
            Created DonationStatusChange instance.
        """
        change = DonationStatusChange(
            donation_id=donation_id,
            previous_status=previous_status,
            new_status=new_status,
            reason=reason,
        )
        self.session.add(change)
        await self.session.flush()

        logger.debug(
            f"Recorded status change for donation {donation_id}: "
            f"{previous_status} -> {new_status}"
        )
        return change
