"""Import engine for payment gateway transactions.

Turns raw gateway rows (CSV exports or webhook payloads) into donor,
project, child, sponsorship and donation records in the ledger.

Features:
- Normalize rows from several column layouts into one Transaction shape
- Classify what each transaction funds from metadata and free text
- Find or create donors and beneficiaries
- Detect re-imports and duplicate subscriptions per invoice
- Apply a forward-only status policy and summarize every run
"""

from .models import (
    Transaction,
    FieldIssue,
    DonorContact,
    GeneralBeneficiary,
    ProjectBeneficiary,
    ChildBeneficiary,
    Beneficiary,
    DonorIdentity,
    ResolvedBeneficiary,
    RecurringKey,
    OneTimeKey,
    FingerprintKey,
    DonationKey,
    DonationRecord,
    Detection,
    StatusDecision,
    RowOutcome,
    RowResult,
    RowError,
    ImportSummary,
)
from .errors import (
    LedgerImportError,
    ParseError,
    ClassificationAmbiguity,
    PersistenceError,
)
from .config import ImportSettings, load_settings
from .profiles import ColumnProfile, STRIPE_EXPORT, WEBHOOK, get_profile
from .normalizer import RowNormalizer
from .classifier import BeneficiaryClassifier
from .ledger import LedgerBase, LedgerScope
from .resolver import EntityResolver
from .detector import DuplicateDetector
from .status import StatusResolver
from .importer import BatchImporter
from .report import ImportReportGenerator

__all__ = [
    # Models
    "Transaction",
    "FieldIssue",
    "DonorContact",
    "GeneralBeneficiary",
    "ProjectBeneficiary",
    "ChildBeneficiary",
    "Beneficiary",
    "DonorIdentity",
    "ResolvedBeneficiary",
    "RecurringKey",
    "OneTimeKey",
    "FingerprintKey",
    "DonationKey",
    "DonationRecord",
    "Detection",
    "StatusDecision",
    "RowOutcome",
    "RowResult",
    "RowError",
    "ImportSummary",
    # Errors
    "LedgerImportError",
    "ParseError",
    "ClassificationAmbiguity",
    "PersistenceError",
    # Configuration
    "ImportSettings",
    "load_settings",
    "ColumnProfile",
    "STRIPE_EXPORT",
    "WEBHOOK",
    "get_profile",
    # Core Components
    "RowNormalizer",
    "BeneficiaryClassifier",
    "LedgerBase",
    "LedgerScope",
    "EntityResolver",
    "DuplicateDetector",
    "StatusResolver",
    "BatchImporter",
    "ImportReportGenerator",
]
