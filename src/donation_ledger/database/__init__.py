"""Database module for donation ledger persistence."""

from .models import (
    Base,
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
from .session import (
    get_db,
    get_database_url,
    init_db,
    close_db,
    create_async_engine,
    get_async_session_factory,
    DatabaseManager,
)
from .repository import (
    DonorRepository,
    ProjectRepository,
    ChildRepository,
    SponsorshipRepository,
    InvoiceRepository,
    DonationRepository,
    DonationStatusChangeRepository,
)

__all__ = [
    # Models
    "Base",
    "Child",
    "Donation",
    "DonationStatus",
    "DonationStatusChange",
    "Donor",
    "Invoice",
    "Project",
    "ProjectType",
    "Sponsorship",
    # Session management
    "get_db",
    "get_database_url",
    "init_db",
    "close_db",
    "create_async_engine",
    "get_async_session_factory",
    "DatabaseManager",
    # Repositories
    "DonorRepository",
    "ProjectRepository",
    "ChildRepository",
    "SponsorshipRepository",
    "InvoiceRepository",
    "DonationRepository",
    "DonationStatusChangeRepository",
]
