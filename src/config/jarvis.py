"""Business settings for the Jarvis WhatsApp assistant."""

from __future__ import annotations

import os
from typing import Dict, List, Optional, Tuple

from pydantic import BaseModel, Field


class CompanyConfig(BaseModel):
    name: str = "Nourx"
    description: str = "Société ivoirienne de services numériques"
    location: str = "Abidjan, Côte d'Ivoire"
    support_email: str = "support@nourx.ci"


class BusinessHours(BaseModel):
    """Opening hours in the company timezone.

    Each day maps to an ``(open_hour, close_hour)`` pair; a missing day is
    closed. Weekdays follow ``datetime.weekday()`` (Monday is 0).
    """

    timezone: str = "Africa/Abidjan"
    hours: Dict[int, Tuple[int, int]] = Field(
        default_factory=lambda: {0: (8, 18), 1: (8, 18), 2: (8, 18), 3: (8, 18), 4: (8, 18), 5: (9, 13)}
    )


class DocumentLimits(BaseModel):
    max_documents_per_user: int = 10
    max_file_size: int = 10 * 1024 * 1024
    # Characters of extracted text sent to the model for /doc query.
    max_context_chars: int = 12000


class JarvisConfig(BaseModel):
    company: CompanyConfig = Field(default_factory=CompanyConfig)
    business_hours: BusinessHours = Field(default_factory=BusinessHours)
    documents: DocumentLimits = Field(default_factory=DocumentLimits)
    max_history_length: int = 20
    admin_phones: List[str] = Field(default_factory=list)
    bot_number: Optional[str] = None


def _split_phones(raw: Optional[str]) -> List[str]:
    if not raw:
        return []
    return [p.strip() for p in raw.split(",") if p.strip()]


def load_jarvis_config() -> JarvisConfig:
    """Return business settings with values taken from the environment."""

    return JarvisConfig(
        admin_phones=_split_phones(os.getenv("ADMIN_PHONES")),
        bot_number=os.getenv("BOT_NUMBER") or None,
    )
