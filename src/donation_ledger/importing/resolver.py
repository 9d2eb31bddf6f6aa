"""Resolution of donors and beneficiaries to ledger entities."""

import hashlib
import logging
from typing import Optional

from ..database.models import ProjectType
from .config import ImportSettings
from .errors import ClassificationAmbiguity
from .ledger import LedgerBase
from .models import (
    Beneficiary,
    ChildBeneficiary,
    ChildRef,
    DonorIdentity,
    DonorRef,
    GeneralBeneficiary,
    ProjectBeneficiary,
    ResolvedBeneficiary,
    SponsorshipRef,
    Transaction,
)

logger = logging.getLogger(__name__)

PLACEHOLDER_FIELDS = (
    "name",
    "phone",
    "address_line1",
    "address_line2",
    "city",
    "state",
    "zip_code",
    "country",
)


def _normalize(value: Optional[str]) -> str:
    return " ".join((value or "").lower().split())


class EntityResolver:
    """Finds or creates the donor, project, child and sponsorship a row refers to."""

    def __init__(self, ledger: LedgerBase, settings: Optional[ImportSettings] = None):
        self.ledger = ledger
        self.settings = settings or ImportSettings()

    def placeholder_email(self, txn: Transaction) -> Optional[str]:
        """Deterministic e-mail for donors without one, derived from name, phone and address."""
        contact = txn.contact
        parts = [_normalize(getattr(contact, field)) for field in PLACEHOLDER_FIELDS]
        if not any(parts):
            return None
        digest = hashlib.sha256("|".join(parts).encode("utf-8")).hexdigest()[:16]
        return f"anonymous-{digest}@{self.settings.placeholder_email_domain}"

    def donor_identity(self, txn: Transaction) -> Optional[DonorIdentity]:
        """Work out who gave, without touching the ledger.

        The primary e-mail wins, then the billing e-mail, then a placeholder
        built from the remaining contact fields.

        Returns:
            DonorIdentity, or None when the row carries no contact details.
        """
        contact = txn.contact
        email = contact.email or contact.billing_email
        is_placeholder = False
        if email:
            email = email.strip().lower()
        else:
            email = self.placeholder_email(txn)
            is_placeholder = True
            if email is None:
                return None

        return DonorIdentity(
            email=email,
            is_placeholder=is_placeholder,
            name=contact.name,
            phone=contact.phone,
            address_line1=contact.address_line1,
            address_line2=contact.address_line2,
            city=contact.city,
            state=contact.state,
            zip_code=contact.zip_code,
            country=contact.country,
            gateway_customer_id=txn.customer_id,
            observed_at=txn.transaction_time,
        )

    async def resolve_donor(self, txn: Transaction) -> Optional[DonorRef]:
        identity = self.donor_identity(txn)
        if identity is None:
            logger.warning(f"Row {txn.row_index} has no donor contact details")
            return None
        return await self.ledger.find_or_create_donor(identity)

    async def resolve_beneficiary(self, beneficiary: Beneficiary) -> ResolvedBeneficiary:
        """Map a classified beneficiary onto ledger entities.

        Raises:
            ClassificationAmbiguity: If a project or child ID from metadata is
                unknown to the ledger.
        """
        if isinstance(beneficiary, GeneralBeneficiary):
            project = await self.ledger.find_or_create_project(
                self.settings.general_project_title,
                ProjectType.GENERAL,
                system=True,
            )
            return ResolvedBeneficiary(project=project)

        if isinstance(beneficiary, ProjectBeneficiary):
            if beneficiary.project_id:
                project = await self.ledger.find_project(beneficiary.project_id)
                if project is None:
                    raise ClassificationAmbiguity(
                        f"Unknown project ID {beneficiary.project_id}",
                        identifier=beneficiary.project_id,
                    )
                return ResolvedBeneficiary(project=project)

            description = None
            if beneficiary.source_text:
                description = f"Auto-created from import. Original description: {beneficiary.source_text}"
            project = await self.ledger.find_or_create_project(
                beneficiary.name,
                beneficiary.project_type,
                description=description,
            )
            return ResolvedBeneficiary(project=project)

        if isinstance(beneficiary, ChildBeneficiary):
            if beneficiary.child_id:
                child = await self.ledger.find_child(beneficiary.child_id)
                if child is None:
                    raise ClassificationAmbiguity(
                        f"Unknown child ID {beneficiary.child_id}",
                        identifier=beneficiary.child_id,
                    )
                return ResolvedBeneficiary(child=child)
            child = await self.ledger.find_or_create_child(beneficiary.name)
            return ResolvedBeneficiary(child=child)

        raise TypeError(f"Unsupported beneficiary: {beneficiary!r}")

    async def ensure_sponsorship(
        self,
        donor: Optional[DonorRef],
        child: Optional[ChildRef],
        txn: Transaction,
    ) -> Optional[SponsorshipRef]:
        """Link the donor to the child they sponsor. No-op without a donor."""
        if donor is None or child is None:
            return None
        return await self.ledger.find_or_create_sponsorship(
            donor,
            child,
            monthly_amount=txn.amount,
            subscription_id=txn.subscription_id,
            start_date=txn.transaction_date,
        )
