# donation_ledger package
__version__ = "0.1.0"

from .database import (
    Donation,
    DonationStatus,
    Donor,
    Project,
    Child,
    Sponsorship,
    init_db,
    close_db,
    get_db,
)

# Import engine exports
from .importing import (
    BatchImporter,
    ImportSummary,
    ImportSettings,
    ImportReportGenerator,
    STRIPE_EXPORT,
    WEBHOOK,
)
from .database.ledger import SQLAlchemyLedger, ledger_transaction
