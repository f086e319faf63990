"""Ranked ballot validation.

A ballot ranks 1 to 3 distinct entries of one contest with distinct ranks in
{1, 2, 3}. Partial ballots are fine. Validation is pure; replacing the voter's
previous ballot is the store's job and happens only for a ``ValidBallot``.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Collection, Sequence

from .errors import ValidationError
from .types import BallotItemPayload, Contest, Phase, Vote
from .validation import BallotItem

logger = logging.getLogger(__name__)

MAX_SELECTIONS = 3
VALID_RANKS = frozenset({1, 2, 3})


@dataclass(frozen=True)
class ValidBallot:
    contest_slug: str
    # (entry_id, rank) ordered by rank
    selections: tuple[tuple[int, int], ...]

    def to_votes(self, voter_id: str) -> tuple[Vote, ...]:
        return tuple(
            Vote(contest_slug=self.contest_slug, voter_id=voter_id, entry_id=entry_id, rank=rank)
            for entry_id, rank in self.selections
        )

    def as_payload(self) -> list[BallotItemPayload]:
        return [{"entryId": entry_id, "rank": rank} for entry_id, rank in self.selections]


def _reject(kind, message: str) -> ValidationError:
    logger.warning(f"Ballot rejected ({kind}): {message}")
    return ValidationError(kind=kind, message=message)


def validate_ballot(
    contest: Contest,
    phase: Phase,
    candidate_votes: Sequence[BallotItem],
    entry_ids: Collection[int],
) -> ValidBallot | ValidationError:
    """Check a proposed ballot against the contest's resolved phase and entries.

    Args:
        contest: Contest the ballot is cast in
        phase: Phase after resolution (the stored phase may be stale)
        candidate_votes: Ranked selections as submitted
        entry_ids: Ids of the entries currently in ``contest``

    Returns:
        ValidBallot on success, otherwise ValidationError with kind one of
        phase_closed, empty_ballot, too_many_selections, unknown_entry,
        invalid_rank, duplicate_rank, duplicate_entry
    """
    if phase != "voting":
        return _reject("phase_closed", "Voting is not open for this contest")

    if not candidate_votes:
        return _reject("empty_ballot", "Select at least one entry")

    if len(candidate_votes) > MAX_SELECTIONS:
        return _reject(
            "too_many_selections", f"You can only vote for up to {MAX_SELECTIONS} entries"
        )

    known = set(entry_ids)
    for item in candidate_votes:
        if item.entry_id not in known:
            return _reject("unknown_entry", f"Entry {item.entry_id} is not part of this contest")

    seen_ranks: set[int] = set()
    for item in candidate_votes:
        if item.rank not in VALID_RANKS:
            return _reject("invalid_rank", f"Invalid rank value: {item.rank}")
        if item.rank in seen_ranks:
            return _reject("duplicate_rank", f"Rank {item.rank} is used more than once")
        seen_ranks.add(item.rank)

    seen_entries: set[int] = set()
    for item in candidate_votes:
        if item.entry_id in seen_entries:
            return _reject("duplicate_entry", "Cannot vote for the same entry twice")
        seen_entries.add(item.entry_id)

    selections = tuple(sorted(((item.entry_id, item.rank) for item in candidate_votes), key=lambda s: s[1]))
    return ValidBallot(contest_slug=contest.slug, selections=selections)
