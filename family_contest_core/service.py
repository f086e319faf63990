"""Contest operations exposed to the transport layer.

Every contest read goes through ``_resolve_locked``: the phase is recomputed
from the deadlines and, if it moved, persisted before anything else looks at
it. That lazy transition-on-read replaces a background scheduler.

Admin operations take an ``is_admin`` flag that the caller has already
verified; no secret comparison happens here. Voter ids are opaque: they are
stored exactly as sent and only their length is checked.
"""
from __future__ import annotations

import logging
import random
from dataclasses import replace
from datetime import datetime
from typing import Any, Callable, List, Mapping, Sequence, Tuple, Type, TypeVar

from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from .admin import apply_admin_update
from .ballot import ValidBallot, validate_ballot
from .config import CoreSettings
from .errors import ContestError, ValidationError
from .phase import check_deadline_order, ensure_utc, resolve_phase, utc_now
from .store import ContestStore, UniqueConstraintError
from .tally import tally
from .types import Contest, ContestPayload, Entry, Vote
from .validation import (
    AdminUpdate,
    BallotItem,
    BallotSubmission,
    ContestCreate,
    EntryCreate,
    unique_slug,
)
from .visibility import EntriesView, project_entries, project_entries_for_admin

logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT", bound=BaseModel)

# Slug collisions between concurrent creations are retried this many times.
_SLUG_ATTEMPTS = 5


def public_contest_payload(contest: Contest, entry_count: int) -> ContestPayload:
    """Contest as clients may see it (no admin secret hash)."""
    return {
        "slug": contest.slug,
        "name": contest.name,
        "description": contest.description,
        "submissionDeadline": contest.submission_deadline.isoformat(),
        "votingDeadline": contest.voting_deadline.isoformat(),
        "currentPhase": contest.phase,
        "createdAt": contest.created_at.isoformat() if contest.created_at else None,
        "entryCount": entry_count,
    }


def _parse(model: Type[ModelT], data: Any) -> ModelT:
    if isinstance(data, model):
        return data
    try:
        return model.model_validate(data)
    except PydanticValidationError as e:
        logger.warning(f"{model.__name__} validation failed: {e}")
        raise ContestError.of("invalid_input", f"Invalid input: {e}") from e


def _check_length(field: str, value: str, limit: int) -> None:
    if len(value) > limit:
        logger.warning(f"Rejected {field}: {len(value)} characters (limit {limit})")
        raise ContestError.of("invalid_input", f"{field} must be at most {limit} characters")


class ContestService:
    def __init__(
        self,
        store: ContestStore,
        settings: CoreSettings | None = None,
        *,
        clock: Callable[[], datetime] | None = None,
        rng: random.Random | None = None,
    ) -> None:
        self._store = store
        self._settings = settings or CoreSettings()
        self._clock = clock or utc_now
        self._rng = rng

    def _now(self) -> datetime:
        return ensure_utc(self._clock())

    # ==================== PHASE ====================

    def _resolve_locked(self, contest: Contest) -> Contest:
        """Caller must hold the contest lock."""
        resolution = resolve_phase(contest, self._now())
        if not resolution.changed:
            return contest
        updated = replace(contest, phase=resolution.phase)
        self._store.save_contest(updated)
        logger.info(f"Contest {contest.slug} moved {contest.phase} -> {resolution.phase}")
        return updated

    def _load_locked(self, slug: str) -> Contest:
        contest = self._store.get_contest(slug)
        if contest is None:
            raise ContestError.of("not_found", "Contest not found")
        return contest

    # ==================== CONTESTS ====================

    def create_contest(self, data: ContestCreate | Mapping[str, Any]) -> Contest:
        request = _parse(ContestCreate, data)
        error = check_deadline_order(request.submission_deadline, request.voting_deadline)
        if error is not None:
            raise ContestError(error)

        name = request.name
        description = request.description or ""
        _check_length("name", name, self._settings.max_contest_name_length)
        _check_length("description", description, self._settings.max_description_length)
        created_at = self._now()
        for _ in range(_SLUG_ATTEMPTS):
            contest = Contest(
                slug=unique_slug(name, self._store.contest_slugs()),
                name=name,
                description=description,
                admin_secret_hash=request.admin_secret_hash,
                submission_deadline=request.submission_deadline,
                voting_deadline=request.voting_deadline,
                phase="submission",
                created_at=created_at,
            )
            try:
                self._store.add_contest(contest)
            except UniqueConstraintError:
                logger.debug(f"Slug {contest.slug} taken concurrently, retrying")
                continue
            logger.info(f"Contest created: {contest.slug}")
            return contest
        raise ContestError.of("invalid_input", "Could not allocate a unique contest slug")

    def get_contest(self, slug: str) -> Contest:
        with self._store.contest_lock(slug):
            return self._resolve_locked(self._load_locked(slug))

    def get_public_contest(self, slug: str) -> ContestPayload:
        contest = self.get_contest(slug)
        return public_contest_payload(contest, self._store.count_entries(slug))

    def list_contests(self) -> List[ContestPayload]:
        """All contests, newest first, each with its phase brought up to date."""
        payloads: List[Tuple[datetime, ContestPayload]] = []
        for stored in self._store.list_contests():
            with self._store.contest_lock(stored.slug):
                contest = self._resolve_locked(self._load_locked(stored.slug))
            created = contest.created_at or contest.submission_deadline
            payloads.append(
                (created, public_contest_payload(contest, self._store.count_entries(contest.slug)))
            )
        payloads.sort(key=lambda item: item[0], reverse=True)
        return [payload for _, payload in payloads]

    # ==================== ENTRIES ====================

    def list_entries(self, slug: str) -> EntriesView:
        contest = self.get_contest(slug)
        entries = self._store.list_entries(slug)
        scored = None
        if contest.phase == "results":
            scored = tally(entries, self._store.list_votes(slug))
        return project_entries(contest.phase, entries, scored, rng=self._rng)

    def create_entry(self, slug: str, name: str, image_ref: str) -> Entry:
        request = _parse(EntryCreate, {"name": name, "imageRef": image_ref})
        clean_name = request.name
        _check_length("name", clean_name, self._settings.max_entry_name_length)
        with self._store.contest_lock(slug):
            contest = self._resolve_locked(self._load_locked(slug))
            if contest.phase != "submission":
                raise ContestError.of("phase_closed", "Submissions are closed for this contest")
            if self._store.find_entry_by_name(slug, clean_name) is not None:
                raise ContestError.of("duplicate_name", "An entry with this name already exists")
            try:
                entry = self._store.add_entry(slug, clean_name, request.image_ref, self._now())
            except UniqueConstraintError as e:
                # Lost a race against another submission with the same name.
                raise ContestError.of(
                    "duplicate_name", "An entry with this name already exists"
                ) from e
        logger.info(f"Entry {entry.id} submitted to {slug}")
        return entry

    # ==================== VOTES ====================

    def cast_vote(
        self,
        slug: str,
        voter_id: str,
        ballot: Sequence[BallotItem | Mapping[str, Any]],
    ) -> ValidBallot:
        """Validate ``ballot`` and replace the voter's previous one with it.

        The contest lock is held from phase resolution to the ballot write, so
        an entry deletion or forced close cannot land between the checks and
        the write.
        """
        request = _parse(BallotSubmission, {"voterId": voter_id, "votes": ballot})
        voter = request.voter_id
        _check_length("voterId", voter, self._settings.max_voter_id_length)

        with self._store.contest_lock(slug):
            contest = self._resolve_locked(self._load_locked(slug))
            entry_ids = [entry.id for entry in self._store.list_entries(slug)]

            result = validate_ballot(contest, contest.phase, request.votes, entry_ids)
            if isinstance(result, ValidationError):
                raise ContestError(result)

            self._store.replace_ballot(slug, voter, result.to_votes(voter))
        return result

    def get_voter_ballot(self, slug: str, voter_id: str) -> Tuple[Vote, ...]:
        self.get_contest(slug)
        _check_length("voterId", voter_id, self._settings.max_voter_id_length)
        return tuple(sorted(self._store.get_ballot(slug, voter_id), key=lambda v: v.rank))

    # ==================== ADMIN ====================

    def admin_list_entries(self, slug: str, *, is_admin: bool) -> Tuple[Entry, ...]:
        self.get_contest(slug)
        return project_entries_for_admin(self._store.list_entries(slug), is_admin=is_admin)

    def admin_delete_entry(self, slug: str, entry_id: int, *, is_admin: bool) -> Entry:
        """Remove an entry and its votes. The caller disposes of the stored image."""
        with self._store.contest_lock(slug):
            self._load_locked(slug)
            if not is_admin:
                raise ContestError.of("forbidden", "Admin access required")
            entry = self._store.delete_entry(slug, entry_id)
        if entry is None:
            raise ContestError.of("not_found", "Entry not found")
        logger.info(f"Entry {entry_id} deleted from {slug}")
        return entry

    def admin_update(
        self, slug: str, data: AdminUpdate | Mapping[str, Any], *, is_admin: bool
    ) -> Contest:
        """Apply deadline edits and/or a forced phase.

        The stored record is updated as-is, without resolving the phase first,
        so extending an expired deadline keeps the contest in its current phase.
        """
        with self._store.contest_lock(slug):
            contest = self._load_locked(slug)
            if not is_admin:
                raise ContestError.of("forbidden", "Admin access required")
            update = _parse(AdminUpdate, data)
            result = apply_admin_update(contest, update, is_admin=is_admin)
            if isinstance(result, ValidationError):
                raise ContestError(result)
            if result != contest:
                self._store.save_contest(result)
        return result
