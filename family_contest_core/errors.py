"""Error kinds shared by the pure components and the service layer.

Pure functions (phase, ballot, admin) return a ``ValidationError`` instead of
raising; ``ContestService`` raises ``ContestError`` wrapping the same value so
the transport layer can map ``kind``/``status_code`` to a response.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Literal

ErrorKind = Literal[
    "not_found",
    "phase_closed",
    "duplicate_name",
    "too_many_selections",
    "duplicate_rank",
    "duplicate_entry",
    "unknown_entry",
    "invalid_rank",
    "empty_ballot",
    "invalid_deadline_order",
    "invalid_input",
    "forbidden",
]

_STATUS_BY_KIND: dict[str, int] = {
    "not_found": 404,
    "forbidden": 403,
}


@dataclass
class ValidationError:
    """Represents a non-transport validation failure (pure core)."""

    kind: ErrorKind
    message: str | None = None
    status_code: int | None = None

    def __post_init__(self) -> None:
        if self.status_code is None:
            self.status_code = _STATUS_BY_KIND.get(self.kind, 400)


class ContestError(Exception):
    """Raised by ``ContestService`` when an operation is rejected."""

    def __init__(self, error: ValidationError):
        super().__init__(error.message or error.kind)
        self.error = error

    @classmethod
    def of(cls, kind: ErrorKind, message: str | None = None) -> "ContestError":
        return cls(ValidationError(kind=kind, message=message))

    @property
    def kind(self) -> ErrorKind:
        return self.error.kind

    @property
    def message(self) -> str | None:
        return self.error.message

    @property
    def status_code(self) -> int:
        return self.error.status_code or 400
