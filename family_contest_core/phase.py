"""Deadline-driven phase resolution (pure, no storage).

Contests advance submission -> voting -> results when their deadlines pass.
There is no scheduler: callers resolve the phase every time they read a
contest and persist the result when ``changed`` is set (see
``ContestService``). Resolution only ever moves forward; a manual regression
made by an admin stays in place until a deadline pushes it forward again.
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone

from .errors import ValidationError
from .types import Contest, Phase


@dataclass(frozen=True)
class PhaseResolution:
    phase: Phase
    changed: bool


def ensure_utc(value: datetime) -> datetime:
    """Treat naive datetimes as UTC; convert aware ones to UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def resolve_phase(contest: Contest, now: datetime) -> PhaseResolution:
    """Compute the effective phase of ``contest`` at ``now``.

    Rules, in order:
      1. stored ``submission`` and the submission deadline has passed -> ``voting``
      2. ``submission``/``voting`` after rule 1 and the voting deadline has passed -> ``results``

    Both rules can fire in one call, so a contest first read after both
    deadlines jumps straight to ``results``.
    """
    now = ensure_utc(now)
    phase: Phase = contest.phase

    if phase == "submission" and now >= ensure_utc(contest.submission_deadline):
        phase = "voting"
    if phase in ("submission", "voting") and now >= ensure_utc(contest.voting_deadline):
        phase = "results"

    return PhaseResolution(phase=phase, changed=phase != contest.phase)


def check_deadline_order(
    submission_deadline: datetime, voting_deadline: datetime
) -> ValidationError | None:
    """Voting must close strictly after submissions close."""
    if ensure_utc(voting_deadline) <= ensure_utc(submission_deadline):
        return ValidationError(
            kind="invalid_deadline_order",
            message="Voting deadline must be after submission deadline",
        )
    return None
