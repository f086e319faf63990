"""Manual phase and deadline changes.

The caller has already checked the admin secret; ``is_admin`` is taken as
given. Deadline edits obey the same ordering rule as contest creation and are
applied all-or-nothing together with any forced phase.
"""
from __future__ import annotations

import logging
from dataclasses import replace

from .errors import ValidationError
from .phase import check_deadline_order
from .types import Contest
from .validation import AdminUpdate

logger = logging.getLogger(__name__)


def apply_admin_update(
    contest: Contest, update: AdminUpdate, *, is_admin: bool
) -> Contest | ValidationError:
    """Return ``contest`` with the requested changes, or why they were refused.

    - Either deadline may be given alone; it is checked against the other one's
      current value.
    - A forced phase is written as-is, regressions included. The next read may
      still move it forward if a deadline has already passed.
    """
    if not is_admin:
        return ValidationError(kind="forbidden", message="Admin access required")

    submission_deadline = update.submission_deadline or contest.submission_deadline
    voting_deadline = update.voting_deadline or contest.voting_deadline
    deadlines_changed = (
        update.submission_deadline is not None or update.voting_deadline is not None
    )
    if deadlines_changed:
        error = check_deadline_order(submission_deadline, voting_deadline)
        if error is not None:
            logger.warning(f"Admin deadline edit rejected for {contest.slug}: {error.message}")
            return error

    phase = update.forced_phase or contest.phase
    updated = replace(
        contest,
        submission_deadline=submission_deadline,
        voting_deadline=voting_deadline,
        phase=phase,
    )
    if updated != contest:
        logger.info(
            f"Admin update for {contest.slug}: phase {contest.phase} -> {phase}, "
            f"deadlines {submission_deadline.isoformat()} / {voting_deadline.isoformat()}"
        )
    return updated
