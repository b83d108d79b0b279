"""
sheetsync.models
~~~~~~~~~~~~~~~~

This module implements data models.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Optional


@dataclass
class Credential:
    """ Model the OAuth token material persisted between runs.

    `expires_at` is an absolute epoch-millisecond timestamp. A credential
    without one is considered expired.
    """

    access_token: str
    refresh_token: str
    token_type: str = "bearer"
    expires_in: int = 0
    expires_at: Optional[int] = None

    def stamp(self, issued_at: float) -> "Credential":
        """ Recompute `expires_at` from an issue time given in seconds. """
        self.expires_at = int(issued_at * 1000) + int(self.expires_in) * 1000
        return self

    def is_expired(self, now: float) -> bool:
        if self.expires_at is None:
            return True
        return int(now * 1000) >= self.expires_at

    def to_dict(self) -> dict:
        return {
            "access_token": self.access_token,
            "refresh_token": self.refresh_token,
            "token_type": self.token_type,
            "expires_in": self.expires_in,
            "expires_at": self.expires_at,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Credential":
        return cls(
            access_token=data.get("access_token", ""),
            refresh_token=data.get("refresh_token", ""),
            token_type=data.get("token_type", "bearer"),
            expires_in=int(data.get("expires_in") or 0),
            expires_at=data.get("expires_at"),
        )


class Outcome(Enum):
    """ Per-record result of a sync run. """

    CREATED = "created"
    SKIPPED_NO_EMAIL = "skipped_no_email"
    SKIPPED_DUPLICATE = "skipped_duplicate"
    FAILED = "failed"


@dataclass
class RecordResult:
    """ Model the outcome of uploading one spreadsheet row. """

    index: int
    name: str
    email: str
    outcome: Outcome
    contact_id: Optional[str] = None


@dataclass
class RunSummary:
    """ Model the aggregated result of a sync run.

    Skipped rows are counted as failures in `failed`, and also on their own
    in `skipped`.
    """

    succeeded: int = 0
    failed: int = 0
    skipped: int = 0
    empty: bool = False
    results: list = field(default_factory=list)

    def add(self, result: RecordResult) -> None:
        self.results.append(result)
        if result.outcome is Outcome.CREATED:
            self.succeeded += 1
            return

        self.failed += 1
        if result.outcome in (Outcome.SKIPPED_NO_EMAIL, Outcome.SKIPPED_DUPLICATE):
            self.skipped += 1
