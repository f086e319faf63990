"""What each phase is allowed to show.

- submission: entry count only, no names or images
- voting: entries without submitter names, freshly shuffled on every call
- results: everything, with scores, best first
"""
from __future__ import annotations

import random
from dataclasses import dataclass
from datetime import datetime
from typing import Sequence

from .errors import ContestError
from .tally import ScoredEntry
from .types import EntriesPayload, Entry, EntryPayload, Phase


@dataclass(frozen=True)
class AnonymousEntry:
    entry_id: int
    image_ref: str
    created_at: datetime

    def as_payload(self) -> EntryPayload:
        return {
            "id": self.entry_id,
            "imageRef": self.image_ref,
            "createdAt": self.created_at.isoformat(),
        }


@dataclass(frozen=True)
class EntriesView:
    phase: Phase
    entries: tuple[AnonymousEntry, ...] | tuple[ScoredEntry, ...]
    entry_count: int | None = None

    def as_payload(self) -> EntriesPayload:
        payload: EntriesPayload = {
            "phase": self.phase,
            "entries": [item.as_payload() for item in self.entries],
        }
        if self.entry_count is not None:
            payload["entryCount"] = self.entry_count
        return payload


def entry_payload(entry: Entry) -> EntryPayload:
    """Full entry, name included (admin views and submission receipts)."""
    return {
        "id": entry.id,
        "name": entry.name,
        "imageRef": entry.image_ref,
        "createdAt": entry.created_at.isoformat(),
    }


def project_entries(
    phase: Phase,
    entries: Sequence[Entry],
    scored: Sequence[ScoredEntry] | None = None,
    *,
    rng: random.Random | None = None,
) -> EntriesView:
    """Build the public entries view for ``phase``.

    ``scored`` is the tally output and is only consulted in the results phase.
    ``rng`` exists for tests; by default the module-level generator is used and
    the voting order is reshuffled on every call.
    """
    if phase == "submission":
        return EntriesView(phase=phase, entries=(), entry_count=len(entries))

    if phase == "voting":
        anonymous = [
            AnonymousEntry(entry_id=e.id, image_ref=e.image_ref, created_at=e.created_at)
            for e in entries
        ]
        (rng or random).shuffle(anonymous)
        return EntriesView(phase=phase, entries=tuple(anonymous))

    if scored is None:
        raise ValueError("results view requires tallied entries")
    return EntriesView(phase=phase, entries=tuple(scored))


def project_entries_for_admin(entries: Sequence[Entry], *, is_admin: bool) -> tuple[Entry, ...]:
    """All entries with names, in submission order, whatever the phase."""
    if not is_admin:
        raise ContestError.of("forbidden", "Admin access required")
    return tuple(sorted(entries, key=lambda e: (e.created_at, e.id)))
