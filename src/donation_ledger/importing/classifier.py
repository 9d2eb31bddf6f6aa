"""Beneficiary classification from metadata and free text."""

import logging
import re
from typing import Callable, List, Optional, Tuple

from ..database.models import ProjectType
from .config import ImportSettings
from .models import (
    Beneficiary,
    ChildBeneficiary,
    GeneralBeneficiary,
    ProjectBeneficiary,
    Transaction,
)

logger = logging.getLogger(__name__)

SPONSORSHIP_PATTERN = re.compile(r"\bsponsorship\b.*?\bfor\s+(?P<name>\S.*)$", re.IGNORECASE)
GENERAL_PATTERN = re.compile(r"\b(?:general|monthly)\s+donation\b", re.IGNORECASE)
CAMPAIGN_PATTERN = re.compile(r"\bcampaign\s+(?P<name>\S.*)$", re.IGNORECASE)
INVOICE_PATTERN = re.compile(r"\binvoice\s+[A-Z0-9-]+", re.IGNORECASE)
EMAIL_PATTERN = re.compile(r"^[\w+\-.]+@[a-z\d\-]+(\.[a-z\d\-]+)*\.[a-z]+$", re.IGNORECASE)
DIGITS_PATTERN = re.compile(r"^\d+$")
SUBSCRIPTION_CREATION_PATTERN = re.compile(r"subscription creation", re.IGNORECASE)

Predicate = Callable[[str], bool]
Classify = Callable[[str], Beneficiary]


def _general(_text: str) -> Beneficiary:
    return GeneralBeneficiary()


class BeneficiaryClassifier:
    """Decides what a transaction funds.

    Metadata identifiers win over text. Text is matched against an ordered
    list of (predicate, classify) rules; the first match wins and anything
    unmatched becomes a named project for later review.
    """

    def __init__(self, settings: Optional[ImportSettings] = None):
        self.settings = settings or ImportSettings()
        self.rules: List[Tuple[str, Predicate, Classify]] = [
            ("blank", lambda text: not text, _general),
            ("general_donation", lambda text: bool(GENERAL_PATTERN.search(text)), _general),
            ("campaign", lambda text: bool(CAMPAIGN_PATTERN.search(text)), self._campaign),
            ("invoice", lambda text: bool(INVOICE_PATTERN.search(text)), _general),
            ("email", lambda text: bool(EMAIL_PATTERN.match(text)), _general),
            ("digits", lambda text: bool(DIGITS_PATTERN.match(text)), _general),
            ("subscription_creation", lambda text: bool(SUBSCRIPTION_CREATION_PATTERN.search(text)), _general),
            ("payment_app", self._is_payment_app_boilerplate, _general),
        ]

    def _is_payment_app_boilerplate(self, text: str) -> bool:
        lowered = text.lower()
        return any(phrase in lowered for phrase in self.settings.payment_app_phrases)

    def _bounded(self, name: str) -> str:
        return name.strip()[: self.settings.named_project_max_length].strip()

    def _campaign(self, text: str) -> Beneficiary:
        match = CAMPAIGN_PATTERN.search(text)
        return ProjectBeneficiary(
            name=self._bounded(f"Campaign {match.group('name').strip()}"),
            project_type=ProjectType.CAMPAIGN,
        )

    def _named_project(self, text: str) -> Beneficiary:
        return ProjectBeneficiary(
            name=self._bounded(text),
            project_type=ProjectType.GENERAL,
            source_text=text,
        )

    @staticmethod
    def text_for(txn: Transaction) -> str:
        """The free text rules run against: the plan label, else the description."""
        return (txn.plan_label or txn.description or "").strip()

    def classify_metadata(self, txn: Transaction) -> Optional[Beneficiary]:
        """Classify from structured metadata only; None when it names nothing."""
        metadata = txn.metadata
        if metadata.get("child_id"):
            return ChildBeneficiary(child_id=metadata["child_id"])
        if metadata.get("project_id"):
            return ProjectBeneficiary(project_id=metadata["project_id"])
        if metadata.get("donation_type", "").lower() == "general":
            return GeneralBeneficiary()
        return None

    def child_names(self, text: str) -> List[str]:
        """Names after "sponsorship ... for", split on commas, in order and without repeats."""
        match = SPONSORSHIP_PATTERN.search(text or "")
        if not match:
            return []
        names: List[str] = []
        for part in match.group("name").split(","):
            name = self._bounded(part)
            if name and name not in names:
                names.append(name)
        return names

    def classify_sponsorships(self, txn: Transaction) -> List[ChildBeneficiary]:
        """One beneficiary per child named on a sponsorship plan label or description."""
        for text in (txn.plan_label, txn.description):
            names = self.child_names(text)
            if names:
                return [ChildBeneficiary(name=name) for name in names]
        return []

    def classify_description(self, text: str) -> Beneficiary:
        """Apply the ordered text rules to a piece of free text."""
        text = text.strip()
        for name, predicate, classify in self.rules:
            if predicate(text):
                logger.debug(f"Text {text!r} matched rule '{name}'")
                return classify(text)
        return self._named_project(text)

    def classify_text_all(self, txn: Transaction) -> List[Beneficiary]:
        """Classify ignoring metadata, one entry per sponsored child."""
        return self.classify_sponsorships(txn) or [self.classify_description(self.text_for(txn))]

    def classify_all(self, txn: Transaction) -> List[Beneficiary]:
        """Every beneficiary a transaction funds.

        A sponsorship label naming several children ("... for Wan, Orawan")
        yields one ChildBeneficiary per child; everything else yields one
        beneficiary. Pure and deterministic.
        """
        metadata_beneficiary = self.classify_metadata(txn)
        if metadata_beneficiary is not None:
            return [metadata_beneficiary]
        return self.classify_text_all(txn)

    def classify(self, txn: Transaction) -> Beneficiary:
        """The primary beneficiary of a transaction."""
        return self.classify_all(txn)[0]
