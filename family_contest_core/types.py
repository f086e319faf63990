"""Type definitions for contest records and client payloads."""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import List, Literal, Optional, TypedDict

Phase = Literal["submission", "voting", "results"]

PHASES: tuple[Phase, ...] = ("submission", "voting", "results")


@dataclass(frozen=True)
class Contest:
    slug: str
    name: str
    admin_secret_hash: str
    submission_deadline: datetime
    voting_deadline: datetime
    description: str = ""
    phase: Phase = "submission"
    created_at: Optional[datetime] = None


@dataclass(frozen=True)
class Entry:
    id: int
    contest_slug: str
    name: str
    # Opaque token handed over by the upload collaborator (e.g. a stored filename).
    image_ref: str
    created_at: datetime


@dataclass(frozen=True)
class Vote:
    contest_slug: str
    # Client-held identifier, not a credential: anyone knowing it owns the ballot.
    voter_id: str
    entry_id: int
    rank: int


class VoteBreakdownPayload(TypedDict):
    first: int
    second: int
    third: int


class EntryPayload(TypedDict, total=False):
    """
    Entry as seen by clients.

    ``name`` is only present for results and admin views; ``score`` and
    ``voteBreakdown`` only for results.
    """
    id: int
    name: str
    imageRef: str
    createdAt: str
    score: int
    voteBreakdown: VoteBreakdownPayload


class EntriesPayload(TypedDict, total=False):
    phase: Phase
    entries: List[EntryPayload]
    # Only sent while submissions are open (entries themselves stay hidden).
    entryCount: int


class ContestPayload(TypedDict, total=False):
    """Public contest view; the admin secret hash is never included."""
    slug: str
    name: str
    description: str
    submissionDeadline: str
    votingDeadline: str
    currentPhase: Phase
    createdAt: Optional[str]
    entryCount: int


class BallotItemPayload(TypedDict):
    entryId: int
    rank: int
