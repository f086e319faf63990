from .admin import apply_admin_update
from .ballot import MAX_SELECTIONS, ValidBallot, validate_ballot
from .config import CoreSettings
from .errors import ContestError, ErrorKind, ValidationError
from .phase import PhaseResolution, check_deadline_order, resolve_phase
from .service import ContestService, public_contest_payload
from .store import ContestStore, InMemoryContestStore, UniqueConstraintError
from .tally import RANK_POINTS, ScoredEntry, VoteBreakdown, tally
from .types import PHASES, Contest, Entry, Phase, Vote
from .validation import (
    AdminUpdate,
    BallotItem,
    BallotSubmission,
    ContestCreate,
    EntryCreate,
    InputSanitizer,
    base_slug,
    unique_slug,
)
from .visibility import (
    AnonymousEntry,
    EntriesView,
    entry_payload,
    project_entries,
    project_entries_for_admin,
)

__all__ = [
    "AdminUpdate",
    "AnonymousEntry",
    "BallotItem",
    "BallotSubmission",
    "Contest",
    "ContestCreate",
    "ContestError",
    "ContestService",
    "ContestStore",
    "CoreSettings",
    "EntriesView",
    "Entry",
    "EntryCreate",
    "ErrorKind",
    "InMemoryContestStore",
    "InputSanitizer",
    "MAX_SELECTIONS",
    "PHASES",
    "Phase",
    "PhaseResolution",
    "RANK_POINTS",
    "ScoredEntry",
    "UniqueConstraintError",
    "ValidBallot",
    "ValidationError",
    "Vote",
    "VoteBreakdown",
    "apply_admin_update",
    "base_slug",
    "check_deadline_order",
    "entry_payload",
    "project_entries",
    "project_entries_for_admin",
    "public_contest_payload",
    "resolve_phase",
    "tally",
    "unique_slug",
    "validate_ballot",
]
