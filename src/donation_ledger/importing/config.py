"""Import tuning loaded from the environment."""

import os
from typing import Tuple

from pydantic import BaseModel, Field

DEFAULT_PAYMENT_APP_PHRASES = (
    "captured via payment app",
    "payment for stripe app",
)


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None or value.strip() == "":
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


class ImportSettings(BaseModel):
    """Knobs for classification, donor identity and status policy."""
    named_project_max_length: int = Field(default=100, ge=1)
    general_project_title: str = Field(default="General Donation")
    placeholder_email_domain: str = Field(default="donors.invalid")
    payment_app_phrases: Tuple[str, ...] = DEFAULT_PAYMENT_APP_PHRASES
    # Lets a needs_attention donation become succeeded on re-import once its problem is gone
    allow_attention_recovery: bool = True


def load_settings() -> ImportSettings:
    """Build ImportSettings from DONATION_IMPORT_* environment variables."""
    settings = ImportSettings()
    max_length = os.getenv("DONATION_IMPORT_NAMED_PROJECT_MAX_LENGTH")
    if max_length:
        settings = settings.model_copy(update={"named_project_max_length": int(max_length)})
    domain = os.getenv("DONATION_IMPORT_PLACEHOLDER_EMAIL_DOMAIN")
    if domain:
        settings = settings.model_copy(update={"placeholder_email_domain": domain.strip()})
    return settings.model_copy(update={
        "allow_attention_recovery": _env_bool(
            "DONATION_IMPORT_ALLOW_ATTENTION_RECOVERY",
            settings.allow_attention_recovery,
        ),
    })
