"""Batch import of gateway transactions into the donation ledger."""

import uuid
import logging
from collections import Counter
from datetime import datetime
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Tuple

from .classifier import BeneficiaryClassifier
from .config import ImportSettings
from .detector import DuplicateDetector
from .errors import ClassificationAmbiguity
from .ledger import LedgerBase, LedgerScope
from .models import (
    DonationRecord,
    DonorRef,
    FingerprintKey,
    ImportSummary,
    ResolvedBeneficiary,
    RowError,
    RowOutcome,
    RowResult,
    Transaction,
)
from .normalizer import RowNormalizer
from .profiles import ColumnProfile
from .resolver import EntityResolver
from .status import StatusResolver

logger = logging.getLogger(__name__)

MAX_RAW_VALUE_LENGTH = 500

ResolverFactory = Callable[[LedgerBase, ImportSettings], EntityResolver]


def sanitize_row(raw_row: Any) -> Dict[str, str]:
    """Copy a raw row with every value as a bounded string, safe to log and serialize."""
    if not isinstance(raw_row, Mapping):
        return {"value": str(raw_row)[:MAX_RAW_VALUE_LENGTH]}
    return {
        str(key): ("" if value is None else str(value))[:MAX_RAW_VALUE_LENGTH]
        for key, value in raw_row.items()
    }


def missing_fields(
    txn: Transaction,
    donor: Optional[DonorRef],
    resolved: ResolvedBeneficiary,
) -> List[str]:
    """Required fields the row could not supply, in reporting order."""
    missing = []
    if donor is None:
        missing.append("donor")
    if txn.amount == 0:
        missing.append("amount")
    if not resolved.is_resolved:
        missing.append("beneficiary")
    if txn.transaction_date is None:
        missing.append("date")
    if not txn.charge_id:
        missing.append("charge_id")
    return missing


class BatchImporter:
    """
    Drives one pass over a batch of raw rows.

    Each row runs inside its own ledger scope, so a failing row is rolled
    back and recorded without touching rows before or after it.

    Example:
        importer = BatchImporter(lambda: ledger_transaction(factory), STRIPE_EXPORT)
        summary = await importer.run(rows)
    """

    def __init__(
        self,
        ledger_scope: LedgerScope,
        profile: ColumnProfile,
        settings: Optional[ImportSettings] = None,
        classifier: Optional[BeneficiaryClassifier] = None,
        detector: Optional[DuplicateDetector] = None,
        status_resolver: Optional[StatusResolver] = None,
        resolver_factory: ResolverFactory = EntityResolver,
    ):
        """Initialize the importer.

        Args:
            ledger_scope: Callable opening one atomic ledger scope per row.
            profile: Column profile of the incoming rows.
            settings: Import tuning. Defaults to ImportSettings().
            classifier: Optional classifier override.
            detector: Optional duplicate detector override.
            status_resolver: Optional status policy override.
            resolver_factory: Builds an EntityResolver for a ledger scope.
        """
        self.ledger_scope = ledger_scope
        self.profile = profile
        self.settings = settings or ImportSettings()
        self.normalizer = RowNormalizer(profile)
        self.classifier = classifier or BeneficiaryClassifier(self.settings)
        self.detector = detector or DuplicateDetector()
        self.status_resolver = status_resolver or StatusResolver(self.settings)
        self.resolver_factory = resolver_factory
        # Charge-less rows seen so far in the current run, by content
        self._fingerprint_counts: Dict[Tuple[str, ...], int] = Counter()

    async def run(
        self,
        rows: Iterable[Mapping[str, Any]],
        should_continue: Optional[Callable[[], bool]] = None,
    ) -> ImportSummary:
        """Import every row, in order.

        Args:
            rows: Raw rows keyed by column name.
            should_continue: Checked before each row; returning False stops
                the run, leaving rows processed so far committed.

        Returns:
            ImportSummary with per-outcome counters and row errors.
        """
        summary = ImportSummary(id=str(uuid.uuid4()), profile=self.profile.name)
        self._fingerprint_counts = Counter()
        logger.info(f"Starting import run {summary.id} with profile {self.profile.name}")

        for row_index, raw_row in enumerate(rows, start=1):
            if should_continue is not None and not should_continue():
                summary.aborted = True
                logger.warning(f"Import run {summary.id} stopped before row {row_index}")
                break

            summary.total_rows += 1
            try:
                async with self.ledger_scope() as ledger:
                    results = await self.process_row(ledger, raw_row, row_index)
            except Exception as e:
                logger.exception(f"Row {row_index} failed: {e}")
                summary.errors.append(RowError(
                    row_index=row_index,
                    message=str(e) or e.__class__.__name__,
                    raw_row=sanitize_row(raw_row),
                ))
                continue

            for result in results:
                summary.record(result.outcome)

        summary.completed_at = datetime.utcnow()
        logger.info(
            f"Import run {summary.id} finished: {summary.total_rows} rows, "
            f"{summary.succeeded_count} succeeded, {summary.failed_count} failed, "
            f"{summary.needs_attention_count} need attention, "
            f"{summary.skipped_count} skipped, {len(summary.errors)} errors"
        )
        return summary

    async def process_row(
        self,
        ledger: LedgerBase,
        raw_row: Mapping[str, Any],
        row_index: int,
    ) -> List[RowResult]:
        """Reconcile one raw row against the ledger and write the result.

        A row funding several children writes one donation per child, all in
        the row's ledger scope.

        Returns:
            One RowResult per donation the row maps to.
        """
        txn = self.normalizer.normalize(raw_row, row_index)
        resolver = self.resolver_factory(ledger, self.settings)

        beneficiaries = self.classifier.classify_all(txn)
        try:
            resolved_list = [await resolver.resolve_beneficiary(b) for b in beneficiaries]
        except ClassificationAmbiguity as e:
            logger.warning(f"Row {row_index}: {e}; falling back to text rules")
            resolved_list = [
                await resolver.resolve_beneficiary(b)
                for b in self.classifier.classify_text_all(txn)
            ]

        donor = await resolver.resolve_donor(txn)
        invoice_id = await ledger.find_or_create_invoice(txn)

        occurrence = 1
        if not txn.charge_id:
            parts = self.detector.fingerprint_parts(txn)
            self._fingerprint_counts[parts] += 1
            occurrence = self._fingerprint_counts[parts]

        results = []
        for resolved in resolved_list:
            results.append(await self._reconcile_donation(
                ledger, resolver, txn, donor, resolved, invoice_id, occurrence,
            ))
        return results

    async def _reconcile_donation(
        self,
        ledger: LedgerBase,
        resolver: EntityResolver,
        txn: Transaction,
        donor: Optional[DonorRef],
        resolved: ResolvedBeneficiary,
        invoice_id: Optional[str],
        occurrence: int,
    ) -> RowResult:
        row_index = txn.row_index

        sponsorship = None
        if resolved.child is not None and txn.subscription_id:
            sponsorship = await resolver.ensure_sponsorship(donor, resolved.child, txn)

        detection = await self.detector.detect(ledger, txn, donor, resolved, occurrence)
        existing = detection.existing

        decision = self.status_resolver.resolve(
            txn.gateway_status,
            detection.duplicate_subscription,
            missing_fields(txn, donor, resolved),
            current=existing.status if existing else None,
        )

        if existing is not None:
            if decision.status == existing.status:
                return RowResult(
                    row_index=row_index,
                    outcome=RowOutcome.SKIPPED,
                    action="unchanged",
                    donation_id=existing.id,
                    status=existing.status,
                )
            if not self.status_resolver.can_transition(existing.status, decision.status):
                logger.info(
                    f"Row {row_index}: keeping donation {existing.id} at {existing.status.value}, "
                    f"not moving to {decision.status.value}"
                )
                return RowResult(
                    row_index=row_index,
                    outcome=RowOutcome.SKIPPED,
                    action="unchanged",
                    donation_id=existing.id,
                    status=existing.status,
                )

            saved = await ledger.upsert_donation(existing.model_copy(update={
                "status": decision.status,
                "needs_attention_reason": decision.reason,
            }))
            logger.info(
                f"Row {row_index}: donation {saved.id} moved from "
                f"{existing.status.value} to {saved.status.value}"
            )
            return RowResult(
                row_index=row_index,
                outcome=RowOutcome.for_status(saved.status),
                action="updated",
                donation_id=saved.id,
                status=saved.status,
            )

        key = detection.key
        saved = await ledger.upsert_donation(DonationRecord(
            donor_id=donor.id if donor else None,
            project_id=resolved.project.id if resolved.project else None,
            sponsorship_id=sponsorship.id if sponsorship else None,
            child_id=resolved.child.id if resolved.child else None,
            amount=txn.amount,
            date=txn.transaction_date,
            status=decision.status,
            gateway_charge_id=txn.charge_id,
            gateway_customer_id=txn.customer_id,
            gateway_subscription_id=txn.subscription_id,
            gateway_invoice_id=invoice_id,
            import_fingerprint=key.fingerprint if isinstance(key, FingerprintKey) else None,
            duplicate_subscription_detected=detection.duplicate_subscription,
            needs_attention_reason=decision.reason,
            source=txn.source,
        ))
        if decision.reason:
            logger.warning(f"Row {row_index}: donation {saved.id} needs attention: {decision.reason}")
        return RowResult(
            row_index=row_index,
            outcome=RowOutcome.for_status(saved.status),
            action="created",
            donation_id=saved.id,
            status=saved.status,
        )
