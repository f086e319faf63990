"""Runtime limits for the contest core."""
from __future__ import annotations

import logging
import os
from typing import Mapping

from pydantic import BaseModel, ConfigDict, Field

logger = logging.getLogger(__name__)

ENV_PREFIX = "FAMILY_CONTEST_"


class CoreSettings(BaseModel):
    """Length limits applied while sanitizing client input."""

    model_config = ConfigDict(frozen=True)

    max_contest_name_length: int = Field(100, ge=1, le=1000)
    max_description_length: int = Field(2000, ge=0, le=20000)
    max_entry_name_length: int = Field(255, ge=1, le=1000)
    max_voter_id_length: int = Field(128, ge=1, le=1024)

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> "CoreSettings":
        """Build settings from ``FAMILY_CONTEST_<FIELD>`` variables.

        Unset or blank variables keep the defaults; malformed values raise
        pydantic's ``ValidationError``.
        """
        env = os.environ if environ is None else environ
        overrides: dict[str, str] = {}
        for field_name in cls.model_fields:
            raw = env.get(f"{ENV_PREFIX}{field_name.upper()}", "").strip()
            if raw:
                overrides[field_name] = raw
        if overrides:
            logger.debug(f"CoreSettings overrides from environment: {sorted(overrides)}")
        return cls(**overrides)
