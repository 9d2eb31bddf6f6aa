"""Column profiles describing where each logical field lives in a raw row."""

from typing import Dict, Optional

from pydantic import BaseModel, Field


class ColumnProfile(BaseModel):
    """Maps logical transaction fields to column names of one export format.

    A column set to None is not present in that format.
    """
    name: str = Field(..., description="Profile name, used in run summaries")
    charge_id: str
    invoice_id: Optional[str] = None
    subscription_id: Optional[str] = None
    customer_id: Optional[str] = None
    amount: str
    amount_in_minor_units: bool = Field(
        default=False,
        description="True when the amount column already holds minor units (cents)",
    )
    date: str
    status: str
    plan_label: Optional[str] = None
    description: Optional[str] = None
    metadata: Optional[str] = None

    email: Optional[str] = None
    billing_email: Optional[str] = None
    donor_name: Optional[str] = None
    phone: Optional[str] = None
    address_line1: Optional[str] = None
    address_line2: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    zip_code: Optional[str] = None
    country: Optional[str] = None


# Legacy flat CSV export. The export has no separate invoice column; the
# transaction ID doubles as the invoice ID.
STRIPE_EXPORT = ColumnProfile(
    name="stripe_export",
    charge_id="Transaction ID",
    invoice_id="Transaction ID",
    subscription_id="Cust Subscription Data ID",
    customer_id="Cust ID",
    amount="Amount",
    date="Created Formatted",
    status="Status",
    plan_label="Cust Subscription Data Plan Nickname",
    description="Description",
    metadata="metadata",
    email="Cust Email",
    billing_email="Billing Details Email",
    donor_name="Billing Details Name",
    phone="Cust Phone",
    address_line1="Billing Details Address Line 1",
    address_line2="Billing Details Address Line 2",
    city="Billing Details Address City",
    state="Billing Detail Address State",
    zip_code="Billing Details Address Postal Code",
    country="Billing Details Address Country",
)

# Structured rows as produced from webhook payloads.
WEBHOOK = ColumnProfile(
    name="webhook",
    charge_id="charge_id",
    invoice_id="invoice_id",
    subscription_id="subscription_id",
    customer_id="customer_id",
    amount="amount",
    amount_in_minor_units=True,
    date="created",
    status="status",
    plan_label="plan_nickname",
    description="description",
    metadata="metadata",
    email="email",
    billing_email="billing_email",
    donor_name="name",
    phone="phone",
    address_line1="address_line1",
    address_line2="address_line2",
    city="city",
    state="state",
    zip_code="postal_code",
    country="country",
)

PROFILES: Dict[str, ColumnProfile] = {
    STRIPE_EXPORT.name: STRIPE_EXPORT,
    WEBHOOK.name: WEBHOOK,
}


def get_profile(name: str) -> ColumnProfile:
    """Look up a built-in profile by name.

    Raises:
        ValueError: If no profile has that name.
    """
    profile = PROFILES.get(name)
    if profile is None:
        raise ValueError(
            f"Unknown column profile: {name}. "
            f"Available profiles: {', '.join(sorted(PROFILES))}"
        )
    return profile
