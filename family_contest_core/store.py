"""Storage seam for contests, entries and ballots.

The core only needs atomic read/update access to its records. ``ContestStore``
describes that access; ``InMemoryContestStore`` implements it for tests and
single-process deployments.

Locking (in-memory store):
- One lock per contest slug, handed out by ``contest_lock()``; callers hold it
  around every read-modify-write of a contest record
- One lock per (contest, voter) ballot; ballots of different voters never
  contend
- Both registries are created under a global registry lock
"""
from __future__ import annotations

import itertools
import logging
import threading
from contextlib import contextmanager
from datetime import datetime
from typing import ContextManager, Dict, Iterator, List, Protocol, Sequence, Tuple

from .types import Contest, Entry, Vote

logger = logging.getLogger(__name__)


class UniqueConstraintError(Exception):
    """A write would break a uniqueness rule (contest slug, entry name)."""


class ContestStore(Protocol):
    def contest_lock(self, slug: str) -> ContextManager[None]:
        ...

    def get_contest(self, slug: str) -> Contest | None:
        ...

    def list_contests(self) -> List[Contest]:
        ...

    def contest_slugs(self) -> set[str]:
        ...

    def add_contest(self, contest: Contest) -> Contest:
        ...

    def save_contest(self, contest: Contest) -> None:
        ...

    def list_entries(self, slug: str) -> List[Entry]:
        ...

    def count_entries(self, slug: str) -> int:
        ...

    def find_entry_by_name(self, slug: str, name: str) -> Entry | None:
        ...

    def add_entry(self, slug: str, name: str, image_ref: str, created_at: datetime) -> Entry:
        ...

    def delete_entry(self, slug: str, entry_id: int) -> Entry | None:
        ...

    def replace_ballot(self, slug: str, voter_id: str, votes: Sequence[Vote]) -> None:
        ...

    def get_ballot(self, slug: str, voter_id: str) -> Tuple[Vote, ...]:
        ...

    def list_votes(self, slug: str) -> List[Vote]:
        ...


def _name_key(name: str) -> str:
    return name.strip().casefold()


class InMemoryContestStore:
    """Thread-safe dict-backed store."""

    def __init__(self) -> None:
        self._contests: Dict[str, Contest] = {}
        self._entries: Dict[str, Dict[int, Entry]] = {}
        # (slug, voter_id) -> full ballot; swapped as a whole on replacement
        self._ballots: Dict[Tuple[str, str], Tuple[Vote, ...]] = {}
        self._entry_ids = itertools.count(1)

        # Protects the lock registries and the contest/entry dicts.
        self._registry_lock = threading.Lock()
        self._contest_locks: Dict[str, threading.RLock] = {}
        self._ballot_locks: Dict[Tuple[str, str], threading.Lock] = {}

    # ---- locks ----

    def _lock_for_contest(self, slug: str) -> threading.RLock:
        with self._registry_lock:
            lock = self._contest_locks.get(slug)
            if lock is None:
                lock = threading.RLock()
                self._contest_locks[slug] = lock
            return lock

    def _lock_for_ballot(self, slug: str, voter_id: str) -> threading.Lock:
        key = (slug, voter_id)
        with self._registry_lock:
            lock = self._ballot_locks.get(key)
            if lock is None:
                lock = threading.Lock()
                self._ballot_locks[key] = lock
            return lock

    @contextmanager
    def contest_lock(self, slug: str) -> Iterator[None]:
        with self._lock_for_contest(slug):
            yield

    # ---- contests ----

    def get_contest(self, slug: str) -> Contest | None:
        return self._contests.get(slug)

    def list_contests(self) -> List[Contest]:
        with self._registry_lock:
            return list(self._contests.values())

    def contest_slugs(self) -> set[str]:
        with self._registry_lock:
            return set(self._contests)

    def add_contest(self, contest: Contest) -> Contest:
        with self._registry_lock:
            if contest.slug in self._contests:
                raise UniqueConstraintError(f"contest slug already exists: {contest.slug}")
            self._contests[contest.slug] = contest
            self._entries[contest.slug] = {}
        return contest

    def save_contest(self, contest: Contest) -> None:
        with self._registry_lock:
            if contest.slug not in self._contests:
                raise KeyError(contest.slug)
            self._contests[contest.slug] = contest

    # ---- entries ----

    def list_entries(self, slug: str) -> List[Entry]:
        with self._registry_lock:
            entries = list(self._entries.get(slug, {}).values())
        return sorted(entries, key=lambda e: (e.created_at, e.id))

    def count_entries(self, slug: str) -> int:
        with self._registry_lock:
            return len(self._entries.get(slug, {}))

    def find_entry_by_name(self, slug: str, name: str) -> Entry | None:
        key = _name_key(name)
        with self._registry_lock:
            for entry in self._entries.get(slug, {}).values():
                if _name_key(entry.name) == key:
                    return entry
        return None

    def add_entry(self, slug: str, name: str, image_ref: str, created_at: datetime) -> Entry:
        key = _name_key(name)
        with self._registry_lock:
            if slug not in self._entries:
                raise KeyError(slug)
            bucket = self._entries[slug]
            # Uniqueness is checked and the row inserted under one lock.
            if any(_name_key(existing.name) == key for existing in bucket.values()):
                raise UniqueConstraintError(f"entry name already exists in {slug}: {name}")
            entry = Entry(
                id=next(self._entry_ids),
                contest_slug=slug,
                name=name,
                image_ref=image_ref,
                created_at=created_at,
            )
            bucket[entry.id] = entry
        return entry

    def delete_entry(self, slug: str, entry_id: int) -> Entry | None:
        with self._registry_lock:
            entry = self._entries.get(slug, {}).pop(entry_id, None)
            if entry is None:
                return None
            keys = [key for key in list(self._ballots) if key[0] == slug]
        # Cascade: drop the deleted entry from every ballot that ranked it.
        touched = 0
        for key in keys:
            with self._lock_for_ballot(*key):
                ballot = self._ballots.get(key, ())
                kept = tuple(vote for vote in ballot if vote.entry_id != entry_id)
                if len(kept) != len(ballot):
                    self._ballots[key] = kept
                    touched += 1
        logger.debug(f"Entry {entry_id} removed from {touched} ballots in {slug}")
        return entry

    # ---- ballots ----

    def replace_ballot(self, slug: str, voter_id: str, votes: Sequence[Vote]) -> None:
        ballot = tuple(votes)
        with self._lock_for_ballot(slug, voter_id):
            # Single assignment: readers see either the old or the new ballot.
            self._ballots[(slug, voter_id)] = ballot

    def get_ballot(self, slug: str, voter_id: str) -> Tuple[Vote, ...]:
        return self._ballots.get((slug, voter_id), ())

    def list_votes(self, slug: str) -> List[Vote]:
        snapshot = list(self._ballots.items())
        return [vote for (ballot_slug, _), ballot in snapshot if ballot_slug == slug for vote in ballot]
