"""Models for gateway transaction imports."""

import enum
from datetime import date as DateValue, datetime
from typing import Optional, Dict, Any, List, Literal, Tuple, Union

from pydantic import BaseModel, ConfigDict, Field

from ..database.models import DonationStatus, ProjectType


class FieldIssue(BaseModel):
    """A missing or malformed column found while normalizing a row."""
    model_config = ConfigDict(frozen=True)

    field: str = Field(..., description="Logical field name, e.g. 'amount'")
    message: str = Field(..., description="Human-readable description of the problem")


class DonorContact(BaseModel):
    """Donor contact details as they appear on the gateway row."""
    model_config = ConfigDict(frozen=True)

    email: Optional[str] = None
    billing_email: Optional[str] = None
    name: Optional[str] = None
    phone: Optional[str] = None
    address_line1: Optional[str] = None
    address_line2: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    zip_code: Optional[str] = None
    country: Optional[str] = None


class Transaction(BaseModel):
    """One normalized gateway transaction. Immutable once parsed."""
    model_config = ConfigDict(frozen=True)

    row_index: int = Field(..., description="Position of the row in the input stream")
    charge_id: Optional[str] = Field(None, description="Gateway charge ID")
    invoice_id: Optional[str] = Field(None, description="Gateway invoice ID")
    subscription_id: Optional[str] = Field(None, description="Gateway subscription ID")
    customer_id: Optional[str] = Field(None, description="Gateway customer ID")
    amount: int = Field(default=0, description="Amount in minor units")
    transaction_date: Optional[DateValue] = None
    transaction_time: Optional[datetime] = None
    gateway_status: str = Field(default="", description="Lower-cased gateway payment status")
    description: str = ""
    plan_label: str = Field(default="", description="Subscription plan nickname")
    metadata: Dict[str, str] = Field(default_factory=dict)
    contact: DonorContact = Field(default_factory=DonorContact)
    issues: Tuple[FieldIssue, ...] = ()

    @property
    def is_recurring(self) -> bool:
        return bool(self.subscription_id)

    @property
    def source(self) -> str:
        return self.metadata.get("source") or "import"

    def issue_fields(self) -> List[str]:
        return [issue.field for issue in self.issues]


class GeneralBeneficiary(BaseModel):
    """The general fund."""
    model_config = ConfigDict(frozen=True)

    kind: Literal["general"] = "general"


class ProjectBeneficiary(BaseModel):
    """A named project or campaign, by name or by ledger ID."""
    model_config = ConfigDict(frozen=True)

    kind: Literal["project"] = "project"
    name: Optional[str] = None
    project_id: Optional[str] = None
    project_type: ProjectType = ProjectType.GENERAL
    # Raw text that produced this beneficiary when it came from the catch-all rule
    source_text: Optional[str] = None


class ChildBeneficiary(BaseModel):
    """A sponsored child, by name or by ledger ID."""
    model_config = ConfigDict(frozen=True)

    kind: Literal["child"] = "child"
    name: Optional[str] = None
    child_id: Optional[str] = None


Beneficiary = Union[GeneralBeneficiary, ProjectBeneficiary, ChildBeneficiary]


class DonorIdentity(BaseModel):
    """Resolved lookup identity for a donor."""
    model_config = ConfigDict(frozen=True)

    email: str
    is_placeholder: bool = False
    name: Optional[str] = None
    phone: Optional[str] = None
    address_line1: Optional[str] = None
    address_line2: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    zip_code: Optional[str] = None
    country: Optional[str] = None
    gateway_customer_id: Optional[str] = None
    observed_at: Optional[datetime] = Field(None, description="Time of the transaction carrying these details")


class DonorRef(BaseModel):
    id: str
    email: str
    name: Optional[str] = None


class ProjectRef(BaseModel):
    id: str
    title: str
    project_type: str = ProjectType.GENERAL.value


class ChildRef(BaseModel):
    id: str
    name: str


class SponsorshipRef(BaseModel):
    id: str
    donor_id: str
    child_id: str


class ResolvedBeneficiary(BaseModel):
    """Ledger entities a donation is attributed to."""
    project: Optional[ProjectRef] = None
    child: Optional[ChildRef] = None

    @property
    def is_resolved(self) -> bool:
        return self.project is not None or self.child is not None


class RecurringKey(BaseModel):
    """Uniqueness key for subscription charges funding a child."""
    model_config = ConfigDict(frozen=True)

    shape: Literal["recurring"] = "recurring"
    invoice_id: Optional[str]
    subscription_id: str
    child_id: str


class OneTimeKey(BaseModel):
    """Uniqueness key for one-time gifts."""
    model_config = ConfigDict(frozen=True)

    shape: Literal["one_time"] = "one_time"
    charge_id: str
    project_id: Optional[str] = None
    child_id: Optional[str] = None
    donor_id: Optional[str] = None


class FingerprintKey(BaseModel):
    """Uniqueness key for rows exported without a charge ID."""
    model_config = ConfigDict(frozen=True)

    shape: Literal["fingerprint"] = "fingerprint"
    fingerprint: str
    project_id: Optional[str] = None
    child_id: Optional[str] = None


DonationKey = Union[RecurringKey, OneTimeKey, FingerprintKey]


class DonationRecord(BaseModel):
    """Storage-agnostic view of a ledger donation."""
    id: Optional[str] = None
    donor_id: Optional[str] = None
    project_id: Optional[str] = None
    sponsorship_id: Optional[str] = None
    child_id: Optional[str] = None
    amount: int = 0
    date: Optional[DateValue] = None
    status: DonationStatus = DonationStatus.SUCCEEDED
    gateway_charge_id: Optional[str] = None
    gateway_customer_id: Optional[str] = None
    gateway_subscription_id: Optional[str] = None
    gateway_invoice_id: Optional[str] = None
    import_fingerprint: Optional[str] = None
    duplicate_subscription_detected: bool = False
    needs_attention_reason: Optional[str] = None
    source: str = "import"


class Detection(BaseModel):
    """Outcome of the idempotency and anomaly checks for one transaction."""
    key: Optional[DonationKey] = None
    existing: Optional[DonationRecord] = None
    duplicate_subscription: bool = False
    conflicting_donation_id: Optional[str] = None


class StatusDecision(BaseModel):
    """Canonical status chosen for a transaction, with the reasons behind it."""
    status: DonationStatus
    reasons: List[str] = Field(default_factory=list)

    @property
    def reason(self) -> Optional[str]:
        return "; ".join(self.reasons) if self.reasons else None


class RowOutcome(str, enum.Enum):
    """The counter a processed row contributes to."""
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    NEEDS_ATTENTION = "needs_attention"
    SKIPPED = "skipped"

    @classmethod
    def for_status(cls, status: DonationStatus) -> "RowOutcome":
        if status == DonationStatus.SUCCEEDED:
            return cls.SUCCEEDED
        if status == DonationStatus.FAILED:
            return cls.FAILED
        # refunded, canceled and needs_attention all ask for a human look
        return cls.NEEDS_ATTENTION


class RowResult(BaseModel):
    """Result of processing a single row."""
    row_index: int
    outcome: RowOutcome
    action: Literal["created", "updated", "unchanged"]
    donation_id: Optional[str] = None
    status: Optional[DonationStatus] = None


class RowError(BaseModel):
    """A row that raised while being processed."""
    row_index: int = Field(..., description="Position of the row in the input stream")
    message: str = Field(..., description="Error message")
    raw_row: Optional[Dict[str, Any]] = Field(None, description="Sanitized copy of the offending row")


class ImportSummary(BaseModel):
    """Run summary for one batch import."""
    id: str = Field(..., description="Run ID")
    profile: str = Field(..., description="Column profile used to read the rows")
    started_at: datetime = Field(default_factory=datetime.utcnow)
    completed_at: Optional[datetime] = None

    total_rows: int = Field(default=0)
    succeeded_count: int = Field(default=0)
    failed_count: int = Field(default=0)
    needs_attention_count: int = Field(default=0)
    skipped_count: int = Field(default=0)
    errors: List[RowError] = Field(default_factory=list)

    aborted: bool = Field(default=False, description="True when the run was stopped between rows")

    def record(self, outcome: RowOutcome) -> None:
        """Increment the counter for a processed row."""
        if outcome == RowOutcome.SUCCEEDED:
            self.succeeded_count += 1
        elif outcome == RowOutcome.FAILED:
            self.failed_count += 1
        elif outcome == RowOutcome.NEEDS_ATTENTION:
            self.needs_attention_count += 1
        else:
            self.skipped_count += 1

    @property
    def has_issues(self) -> bool:
        return bool(self.errors) or self.needs_attention_count > 0

    def to_summary_dict(self) -> Dict[str, Any]:
        """Return the run counters without per-row error detail."""
        return {
            "id": self.id,
            "profile": self.profile,
            "started_at": self.started_at.isoformat(),
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "total_rows": self.total_rows,
            "succeeded_count": self.succeeded_count,
            "failed_count": self.failed_count,
            "needs_attention_count": self.needs_attention_count,
            "skipped_count": self.skipped_count,
            "error_count": len(self.errors),
            "aborted": self.aborted,
        }

    def to_full_dict(self) -> Dict[str, Any]:
        """Return the complete summary including row errors."""
        result = self.to_summary_dict()
        result["errors"] = [e.model_dump() for e in self.errors]
        return result
