"""Normalization of raw gateway rows into Transaction values."""

import json
import logging
from datetime import date, datetime, timezone
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, List, Mapping, Optional

from .errors import ParseError
from .models import DonorContact, FieldIssue, Transaction
from .profiles import ColumnProfile

logger = logging.getLogger(__name__)

# Metadata keys understood by the classifier; anything else is dropped
METADATA_KEYS = ("child_id", "project_id", "donation_type", "source")

DATE_FORMATS = [
    "%Y-%m-%d %H:%M:%S",
    "%Y-%m-%d %H:%M",
    "%Y-%m-%dT%H:%M:%S",
    "%Y-%m-%dT%H:%M:%S.%f",
    "%Y-%m-%d",
    "%m/%d/%Y %H:%M",
    "%m/%d/%Y",
]


def _clean(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def parse_amount(raw: Any, in_minor_units: bool = False) -> int:
    """Convert a raw amount cell to integer minor units without floating point.

    Args:
        raw: Cell value, e.g. "50.00", "$1,250.5" or 5000.
        in_minor_units: True when the value is already expressed in cents.

    Returns:
        Amount in minor units.

    Raises:
        ValueError: If the value is blank, not a number, negative, or finer
            than one minor unit.
    """
    text = _clean(raw)
    if text is None:
        raise ValueError("amount is blank")

    text = text.replace("$", "").replace(",", "").replace(" ", "")
    try:
        value = Decimal(text)
    except InvalidOperation:
        raise ValueError(f"amount {raw!r} is not a number")

    if not value.is_finite():
        raise ValueError(f"amount {raw!r} is not a number")
    if value < 0:
        raise ValueError(f"amount {raw!r} is negative")

    minor = value if in_minor_units else value * 100
    if minor != minor.to_integral_value():
        raise ValueError(f"amount {raw!r} is finer than one minor unit")
    return int(minor)


def parse_timestamp(raw: Any) -> datetime:
    """Parse a gateway timestamp in any of the supported formats.

    Timezone-aware values are converted to naive UTC.

    Raises:
        ValueError: If the value cannot be parsed.
    """
    if isinstance(raw, datetime):
        parsed = raw
    elif isinstance(raw, date):
        return datetime(raw.year, raw.month, raw.day)
    else:
        text = _clean(raw)
        if text is None:
            raise ValueError("date is blank")

        if text.isdigit() and len(text) >= 9:
            # UNIX epoch seconds, as sent in webhook payloads
            return datetime.fromtimestamp(int(text), tz=timezone.utc).replace(tzinfo=None)

        parsed = None
        try:
            parsed = datetime.fromisoformat(text.replace("Z", "+00:00"))
        except ValueError:
            for fmt in DATE_FORMATS:
                try:
                    parsed = datetime.strptime(text, fmt)
                    break
                except ValueError:
                    continue

        if parsed is None:
            raise ValueError(
                f"Unable to parse date: {text}. "
                f"Expected formats: YYYY-MM-DD, YYYY-MM-DD HH:MM:SS or MM/DD/YYYY"
            )

    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed


class RowNormalizer:
    """Turns raw rows into Transaction values using a column profile.

    Field-level problems never stop a row: they are recorded as FieldIssue
    entries and the field gets a placeholder value (zero amount, missing
    date, empty status).
    """

    def __init__(self, profile: ColumnProfile):
        self.profile = profile

    def _get(self, raw_row: Mapping[str, Any], column: Optional[str]) -> Optional[str]:
        if not column:
            return None
        return _clean(raw_row.get(column))

    def _read_metadata(
        self,
        raw_row: Mapping[str, Any],
        issues: List[FieldIssue],
    ) -> Dict[str, str]:
        if not self.profile.metadata:
            return {}

        raw = raw_row.get(self.profile.metadata)
        if raw is None or raw == "":
            return {}

        if isinstance(raw, str):
            try:
                raw = json.loads(raw)
            except json.JSONDecodeError:
                issues.append(FieldIssue(field="metadata", message="metadata is not valid JSON"))
                return {}

        if not isinstance(raw, Mapping):
            issues.append(FieldIssue(field="metadata", message="metadata is not an object"))
            return {}

        metadata: Dict[str, str] = {}
        for key in METADATA_KEYS:
            value = _clean(raw.get(key))
            if value is not None:
                metadata[key] = value
        return metadata

    def normalize(self, raw_row: Mapping[str, Any], row_index: int) -> Transaction:
        """Normalize one raw row.

        Args:
            raw_row: String-keyed mapping of column values.
            row_index: Position of the row in the input stream.

        Returns:
            Transaction with any field issues attached.

        Raises:
            ParseError: If the row is not a mapping at all.
        """
        if not isinstance(raw_row, Mapping):
            raise ParseError(
                row_index,
                "row",
                f"expected a mapping of columns, got {type(raw_row).__name__}",
            )

        profile = self.profile
        issues: List[FieldIssue] = []

        charge_id = self._get(raw_row, profile.charge_id)
        if charge_id is None:
            issues.append(FieldIssue(field="charge_id", message=f"column '{profile.charge_id}' is blank"))

        amount = 0
        try:
            amount = parse_amount(raw_row.get(profile.amount), profile.amount_in_minor_units)
        except ValueError as e:
            issues.append(FieldIssue(field="amount", message=str(e)))

        transaction_time = None
        try:
            transaction_time = parse_timestamp(raw_row.get(profile.date))
        except ValueError as e:
            issues.append(FieldIssue(field="date", message=str(e)))

        status = (self._get(raw_row, profile.status) or "").lower()
        if not status:
            issues.append(FieldIssue(field="status", message=f"column '{profile.status}' is blank"))

        contact = DonorContact(
            email=self._get(raw_row, profile.email),
            billing_email=self._get(raw_row, profile.billing_email),
            name=self._get(raw_row, profile.donor_name),
            phone=self._get(raw_row, profile.phone),
            address_line1=self._get(raw_row, profile.address_line1),
            address_line2=self._get(raw_row, profile.address_line2),
            city=self._get(raw_row, profile.city),
            state=self._get(raw_row, profile.state),
            zip_code=self._get(raw_row, profile.zip_code),
            country=self._get(raw_row, profile.country),
        )

        transaction = Transaction(
            row_index=row_index,
            charge_id=charge_id,
            invoice_id=self._get(raw_row, profile.invoice_id) or charge_id,
            subscription_id=self._get(raw_row, profile.subscription_id),
            customer_id=self._get(raw_row, profile.customer_id),
            amount=amount,
            transaction_date=transaction_time.date() if transaction_time else None,
            transaction_time=transaction_time,
            gateway_status=status,
            description=self._get(raw_row, profile.description) or "",
            plan_label=self._get(raw_row, profile.plan_label) or "",
            metadata=self._read_metadata(raw_row, issues),
            contact=contact,
            issues=tuple(issues),
        )

        if issues:
            logger.debug(
                f"Row {row_index} normalized with issues: "
                f"{', '.join(i.field for i in issues)}"
            )
        return transaction
