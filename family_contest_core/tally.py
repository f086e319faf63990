"""Results scoring: ranked votes -> points and per-rank counts.

- Rank 1 = 3 points, rank 2 = 2 points, rank 3 = 1 point, summed per entry.
- Ordering: score descending, then earliest submission, then lowest entry id.
- Entries nobody voted for are kept with score 0.
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Iterable, Sequence

from .types import Entry, EntryPayload, Vote

RANK_POINTS: dict[int, int] = {1: 3, 2: 2, 3: 1}


@dataclass(frozen=True)
class VoteBreakdown:
    first: int = 0
    second: int = 0
    third: int = 0

    def as_payload(self) -> dict[str, int]:
        return {"first": self.first, "second": self.second, "third": self.third}


@dataclass(frozen=True)
class ScoredEntry:
    entry_id: int
    name: str
    image_ref: str
    created_at: datetime
    score: int
    breakdown: VoteBreakdown

    def as_payload(self) -> EntryPayload:
        return {
            "id": self.entry_id,
            "name": self.name,
            "imageRef": self.image_ref,
            "createdAt": self.created_at.isoformat(),
            "score": self.score,
            "voteBreakdown": self.breakdown.as_payload(),
        }


@dataclass
class _Counter:
    entry: Entry
    first: int = 0
    second: int = 0
    third: int = 0

    @property
    def score(self) -> int:
        return (
            self.first * RANK_POINTS[1]
            + self.second * RANK_POINTS[2]
            + self.third * RANK_POINTS[3]
        )


def _tie_break_key(counter: _Counter) -> tuple[int, datetime, int]:
    return (-counter.score, counter.entry.created_at, counter.entry.id)


def tally(entries: Sequence[Entry], votes: Iterable[Vote]) -> tuple[ScoredEntry, ...]:
    """Score every entry and return them best first.

    Votes pointing at entries outside ``entries`` (e.g. deleted ones) are ignored.
    """
    counters: dict[int, _Counter] = {entry.id: _Counter(entry=entry) for entry in entries}
    for vote in votes:
        counter = counters.get(vote.entry_id)
        if counter is None:
            continue
        if vote.rank == 1:
            counter.first += 1
        elif vote.rank == 2:
            counter.second += 1
        elif vote.rank == 3:
            counter.third += 1

    ordered = sorted(counters.values(), key=_tie_break_key)
    return tuple(
        ScoredEntry(
            entry_id=c.entry.id,
            name=c.entry.name,
            image_ref=c.entry.image_ref,
            created_at=c.entry.created_at,
            score=c.score,
            breakdown=VoteBreakdown(first=c.first, second=c.second, third=c.third),
        )
        for c in ordered
    )
