"""SQLAlchemy models for the donation ledger."""

import uuid
from datetime import date as DateValue, datetime
from typing import Optional, Dict, Any, List

from sqlalchemy import (
    Boolean,
    Date,
    String,
    Integer,
    DateTime,
    ForeignKey,
    Text,
    Index,
    UniqueConstraint,
)
from sqlalchemy.orm import DeclarativeBase, relationship, Mapped, mapped_column
import enum


class Base(DeclarativeBase):
    """Base class for all models."""
    pass


class DonationStatus(str, enum.Enum):
    """Canonical donation statuses."""
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    REFUNDED = "refunded"
    CANCELED = "canceled"
    NEEDS_ATTENTION = "needs_attention"


class ProjectType(str, enum.Enum):
    """Kinds of project a donation can fund."""
    GENERAL = "general"
    CAMPAIGN = "campaign"
    SPONSORSHIP = "sponsorship"


def _new_id() -> str:
    return str(uuid.uuid4())


class Donor(Base):
    """A person or organisation that gives money."""
    __tablename__ = "donors"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    email: Mapped[str] = mapped_column(String(255), nullable=False, unique=True, index=True)
    phone: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    address_line1: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    address_line2: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    city: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)
    state: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)
    zip_code: Mapped[Optional[str]] = mapped_column(String(32), nullable=True)
    country: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    gateway_customer_id: Mapped[Optional[str]] = mapped_column(String(255), nullable=True, index=True)

    # Contact fields are only refreshed by transactions newer than this
    last_updated_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

    donations: Mapped[List["Donation"]] = relationship("Donation", back_populates="donor")
    sponsorships: Mapped[List["Sponsorship"]] = relationship("Sponsorship", back_populates="donor")


class Project(Base):
    """A fund, campaign or named cause a donation can be attributed to."""
    __tablename__ = "projects"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    title: Mapped[str] = mapped_column(String(255), nullable=False, unique=True, index=True)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    project_type: Mapped[str] = mapped_column(String(32), nullable=False, default=ProjectType.GENERAL.value)
    system: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=datetime.utcnow)

    donations: Mapped[List["Donation"]] = relationship("Donation", back_populates="project")


class Child(Base):
    """A sponsored child."""
    __tablename__ = "children"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    name: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=datetime.utcnow)

    sponsorships: Mapped[List["Sponsorship"]] = relationship("Sponsorship", back_populates="child")


class Sponsorship(Base):
    """Recurring donor to child relationship derived from subscription charges."""
    __tablename__ = "sponsorships"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    donor_id: Mapped[str] = mapped_column(String(36), ForeignKey("donors.id"), nullable=False, index=True)
    child_id: Mapped[str] = mapped_column(String(36), ForeignKey("children.id"), nullable=False, index=True)
    monthly_amount: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    gateway_subscription_id: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    start_date: Mapped[Optional[DateValue]] = mapped_column(Date, nullable=True)
    end_date: Mapped[Optional[DateValue]] = mapped_column(Date, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=datetime.utcnow)

    donor: Mapped["Donor"] = relationship("Donor", back_populates="sponsorships")
    child: Mapped["Child"] = relationship("Child", back_populates="sponsorships")

    __table_args__ = (
        UniqueConstraint("donor_id", "child_id", name="uq_sponsorships_donor_child"),
    )


class Invoice(Base):
    """Gateway invoice grouping one or more donations."""
    __tablename__ = "invoices"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    gateway_invoice_id: Mapped[str] = mapped_column(String(255), nullable=False, unique=True, index=True)
    gateway_charge_id: Mapped[Optional[str]] = mapped_column(String(255), nullable=True, index=True)
    gateway_customer_id: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    gateway_subscription_id: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    total_amount: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    invoice_date: Mapped[Optional[DateValue]] = mapped_column(Date, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=datetime.utcnow)

    donations: Mapped[List["Donation"]] = relationship(
        "Donation",
        primaryjoin="Invoice.gateway_invoice_id == foreign(Donation.gateway_invoice_id)",
        viewonly=True,
    )


class Donation(Base):
    """Ledger entry for one reconciled gateway transaction."""
    __tablename__ = "donations"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    donor_id: Mapped[Optional[str]] = mapped_column(String(36), ForeignKey("donors.id"), nullable=True)
    project_id: Mapped[Optional[str]] = mapped_column(String(36), ForeignKey("projects.id"), nullable=True)
    sponsorship_id: Mapped[Optional[str]] = mapped_column(String(36), ForeignKey("sponsorships.id"), nullable=True)
    child_id: Mapped[Optional[str]] = mapped_column(String(36), ForeignKey("children.id"), nullable=True)

    amount: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    date: Mapped[Optional[DateValue]] = mapped_column(Date, nullable=True)
    status: Mapped[str] = mapped_column(String(32), nullable=False, default=DonationStatus.SUCCEEDED.value)

    gateway_charge_id: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    gateway_customer_id: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    gateway_subscription_id: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    gateway_invoice_id: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    # Row fingerprint for gifts exported without a charge ID
    import_fingerprint: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)

    duplicate_subscription_detected: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    needs_attention_reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    source: Mapped[str] = mapped_column(String(64), nullable=False, default="import")

    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

    donor: Mapped[Optional["Donor"]] = relationship("Donor", back_populates="donations")
    project: Mapped[Optional["Project"]] = relationship("Project", back_populates="donations")
    invoice: Mapped[Optional["Invoice"]] = relationship(
        "Invoice",
        primaryjoin="Invoice.gateway_invoice_id == foreign(Donation.gateway_invoice_id)",
        viewonly=True,
    )
    status_history: Mapped[List["DonationStatusChange"]] = relationship(
        "DonationStatusChange",
        back_populates="donation",
        cascade="all, delete-orphan",
        order_by="DonationStatusChange.created_at.desc()",
    )

    __table_args__ = (
        Index("ix_donations_status", "status"),
        Index("ix_donations_gateway_charge_id", "gateway_charge_id"),
        Index("ix_donations_gateway_invoice_id", "gateway_invoice_id"),
        Index("ix_donations_subscription_child", "gateway_subscription_id", "child_id"),
        Index("ix_donations_import_fingerprint", "import_fingerprint"),
    )

    def to_dict(self) -> Dict[str, Any]:
        """Convert donation to dictionary representation."""
        return {
            "id": self.id,
            "donor_id": self.donor_id,
            "project_id": self.project_id,
            "sponsorship_id": self.sponsorship_id,
            "child_id": self.child_id,
            "amount": self.amount,
            "date": self.date.isoformat() if self.date else None,
            "status": self.status,
            "gateway_charge_id": self.gateway_charge_id,
            "gateway_customer_id": self.gateway_customer_id,
            "gateway_subscription_id": self.gateway_subscription_id,
            "gateway_invoice_id": self.gateway_invoice_id,
            "import_fingerprint": self.import_fingerprint,
            "duplicate_subscription_detected": self.duplicate_subscription_detected,
            "needs_attention_reason": self.needs_attention_reason,
            "source": self.source,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }


class DonationStatusChange(Base):
    """Audit trail of donation status transitions."""
    __tablename__ = "donation_status_changes"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    donation_id: Mapped[str] = mapped_column(String(36), ForeignKey("donations.id"), nullable=False, index=True)
    previous_status: Mapped[Optional[str]] = mapped_column(String(32), nullable=True)
    new_status: Mapped[str] = mapped_column(String(32), nullable=False)
    reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=datetime.utcnow)

    donation: Mapped["Donation"] = relationship("Donation", back_populates="status_history")

    def to_dict(self) -> Dict[str, Any]:
        """Convert status change to dictionary representation."""
        return {
            "id": self.id,
            "donation_id": self.donation_id,
            "previous_status": self.previous_status,
            "new_status": self.new_status,
            "reason": self.reason,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }
