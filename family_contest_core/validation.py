"""
Input validation schemas using Pydantic v2
Validates contest creation, entry submission, ballots and admin edits
"""

import logging
import re
from datetime import datetime
from typing import Collection, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from slugify import slugify

from .phase import ensure_utc
from .types import PHASES, Phase

logger = logging.getLogger(__name__)

# ==================== SANITIZATION ====================


class InputSanitizer:
    """Utility class for input sanitization"""

    @staticmethod
    def sanitize_string(value: str, max_length: int = 255) -> str:
        """Sanitize string input"""
        if not isinstance(value, str):
            return str(value)[:max_length]

        # Strip whitespace
        value = value.strip()

        # Remove null bytes
        value = value.replace("\0", "")

        # Limit length
        value = value[:max_length]

        return value.strip()

    @staticmethod
    def sanitize_display_name(name: str, max_length: int = 255) -> str:
        """Sanitize a name shown in galleries and results - keeps Unicode letters"""
        name = InputSanitizer.sanitize_string(name, max_length)

        # Remove control characters and markup brackets, keep everything else (accents, emoji)
        name = re.sub(r"[<>\x00-\x1f\x7f]", "", name)

        return name.strip()


# ==================== SLUGS ====================


def base_slug(name: str) -> str:
    """Lower-case ASCII slug: 'Halloween Costumes 2024!' -> 'halloween-costumes-2024'."""
    return slugify(name or "") or "contest"


def unique_slug(name: str, existing: Collection[str]) -> str:
    """Derive a slug from ``name`` that is not in ``existing`` (base, base-1, base-2, ...)."""
    base = base_slug(name)
    taken = set(existing)
    if base not in taken:
        return base
    counter = 1
    while f"{base}-{counter}" in taken:
        counter += 1
    return f"{base}-{counter}"


# ==================== INPUT MODELS ====================


class ContestCreate(BaseModel):
    """New contest request. Deadline ordering is checked by the core, not here."""

    name: str = Field(..., min_length=1, max_length=1000, description="Display name")
    description: Optional[str] = Field(None, max_length=20000)
    # Already hashed by the credential collaborator; opaque to the core.
    admin_secret_hash: str = Field(..., alias="adminSecretHash", min_length=1, max_length=512)
    submission_deadline: datetime = Field(..., alias="submissionDeadline")
    voting_deadline: datetime = Field(..., alias="votingDeadline")

    model_config = ConfigDict(populate_by_name=True)

    @field_validator("name")
    @classmethod
    def validate_name(cls, v: str) -> str:
        v = InputSanitizer.sanitize_display_name(v, 1000)
        if len(v) == 0:
            raise ValueError("name cannot be empty")
        return v

    @field_validator("description")
    @classmethod
    def validate_description(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return v
        return InputSanitizer.sanitize_string(v, 20000)

    @field_validator("submission_deadline", "voting_deadline")
    @classmethod
    def validate_deadline(cls, v: datetime) -> datetime:
        return ensure_utc(v)


class EntryCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=1000, description="Submitter name")
    image_ref: str = Field(..., alias="imageRef", min_length=1, max_length=1024)

    model_config = ConfigDict(populate_by_name=True)

    @field_validator("name")
    @classmethod
    def validate_name(cls, v: str) -> str:
        v = InputSanitizer.sanitize_display_name(v, 1000)
        if len(v) == 0:
            raise ValueError("name cannot be empty")
        return v

    @field_validator("image_ref")
    @classmethod
    def validate_image_ref(cls, v: str) -> str:
        v = v.strip()
        if len(v) == 0:
            raise ValueError("imageRef cannot be empty")
        return v


class BallotItem(BaseModel):
    """One ranked selection. Rank range is checked by the ballot validator."""

    entry_id: int = Field(..., alias="entryId")
    rank: int

    model_config = ConfigDict(populate_by_name=True)


class BallotSubmission(BaseModel):
    """Ranked ballot for one voter. ``voter_id`` is kept exactly as sent."""

    voter_id: str = Field(..., alias="voterId", min_length=1, max_length=1024)
    votes: List[BallotItem]

    model_config = ConfigDict(populate_by_name=True)


class AdminUpdate(BaseModel):
    """Manual deadline edit and/or forced phase."""

    submission_deadline: Optional[datetime] = Field(None, alias="submissionDeadline")
    voting_deadline: Optional[datetime] = Field(None, alias="votingDeadline")
    forced_phase: Optional[str] = Field(None, alias="currentPhase")

    model_config = ConfigDict(populate_by_name=True)

    @field_validator("submission_deadline", "voting_deadline")
    @classmethod
    def validate_deadline(cls, v: Optional[datetime]) -> Optional[datetime]:
        if v is None:
            return v
        return ensure_utc(v)

    @field_validator("forced_phase")
    @classmethod
    def validate_forced_phase(cls, v: Optional[str]) -> Optional[Phase]:
        """Unknown phases are dropped, not rejected"""
        if v is None:
            return v
        normalized = v.strip().lower()
        if normalized not in PHASES:
            logger.warning(f"Ignoring unknown forced phase: {v!r}")
            return None
        return normalized


# ==================== EXPORT ====================

__all__ = [
    "AdminUpdate",
    "BallotItem",
    "BallotSubmission",
    "ContestCreate",
    "EntryCreate",
    "InputSanitizer",
    "base_slug",
    "unique_slug",
]
