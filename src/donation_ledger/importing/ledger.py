"""Ledger contract the import engine runs against."""

from abc import ABC, abstractmethod
from datetime import date
from typing import AsyncContextManager, Callable, Optional

from ..database.models import ProjectType
from .models import (
    ChildRef,
    DonationKey,
    DonationRecord,
    DonorIdentity,
    DonorRef,
    ProjectRef,
    SponsorshipRef,
    Transaction,
)


class LedgerBase(ABC):
    """
    Storage operations needed by the importer. Every call made through one
    instance belongs to the same transactional scope, opened and closed by
    the caller.
    """

    @abstractmethod
    async def find_or_create_donor(self, identity: DonorIdentity) -> DonorRef:
        raise NotImplementedError

    @abstractmethod
    async def find_or_create_project(
        self,
        name: str,
        project_type: ProjectType = ProjectType.GENERAL,
        system: bool = False,
        description: Optional[str] = None,
    ) -> ProjectRef:
        raise NotImplementedError

    @abstractmethod
    async def find_project(self, project_id: str) -> Optional[ProjectRef]:
        raise NotImplementedError

    @abstractmethod
    async def find_or_create_child(self, name: str) -> ChildRef:
        raise NotImplementedError

    @abstractmethod
    async def find_child(self, child_id: str) -> Optional[ChildRef]:
        raise NotImplementedError

    @abstractmethod
    async def find_or_create_sponsorship(
        self,
        donor: DonorRef,
        child: ChildRef,
        monthly_amount: int = 0,
        subscription_id: Optional[str] = None,
        start_date: Optional[date] = None,
    ) -> SponsorshipRef:
        raise NotImplementedError

    @abstractmethod
    async def find_or_create_invoice(self, txn: Transaction) -> Optional[str]:
        """Record the gateway invoice for a transaction; returns its invoice ID."""
        raise NotImplementedError

    @abstractmethod
    async def find_donation(self, key: DonationKey) -> Optional[DonationRecord]:
        raise NotImplementedError

    @abstractmethod
    async def find_subscription_conflict(
        self,
        invoice_id: Optional[str],
        child_id: str,
        subscription_id: str,
    ) -> Optional[DonationRecord]:
        """A donation on the same invoice for the same child under another subscription."""
        raise NotImplementedError

    @abstractmethod
    async def upsert_donation(self, record: DonationRecord) -> DonationRecord:
        """Insert a new donation, or update status fields when record.id is set."""
        raise NotImplementedError


# Opens one atomic unit of work; commits on clean exit, rolls back on error.
LedgerScope = Callable[[], AsyncContextManager[LedgerBase]]
