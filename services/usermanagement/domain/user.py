"""User domain model."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum

from services.usermanagement.domain.errors import PartialBatchFailure


@dataclass(frozen=True)
class User:
    """User entity as held in the record store.

    ``user_id``, ``created_at`` and ``updated_at`` are assigned by the store;
    a candidate record passed to ``create`` leaves them unset.
    """

    name: str
    dob: date
    email: str
    password: str
    phone: str
    gender: str
    address: str
    user_id: int | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None


@dataclass(frozen=True)
class WarehouseRow:
    """Append-only copy of a user written to the warehouse."""

    id: str
    name: str
    dob: date
    email: str
    phone: str
    gender: str
    address: str
    created_at: float
    migrated_at: float

    def as_dict(self) -> dict[str, object]:
        return {
            "id": self.id,
            "name": self.name,
            "dob": self.dob,
            "email": self.email,
            "phone": self.phone,
            "gender": self.gender,
            "address": self.address,
            "created_at": self.created_at,
            "migrated_at": self.migrated_at,
        }


@dataclass(frozen=True)
class MigratedUserSummary:
    """Narrow projection of a warehouse row."""

    id: str
    name: str
    email: str
    phone: str


@dataclass(frozen=True)
class BulkMigrationResult:
    total: int
    success: int
    failed: int
    errors: list[str] = field(default_factory=list)

    @classmethod
    def empty(cls) -> "BulkMigrationResult":
        return cls(total=0, success=0, failed=0, errors=[])

    @property
    def is_empty(self) -> bool:
        return self.total == 0

    def raise_for_failures(self) -> None:
        """Escalate a partially failed batch for callers that need to."""
        if self.failed:
            raise PartialBatchFailure(self)


@dataclass(frozen=True)
class MigrationStatus:
    """Counts taken from the two stores independently.

    ``pending`` may be negative after repeated re-migration; it is reported
    as computed.
    """

    total: int
    migrated: int

    @property
    def pending(self) -> int:
        return self.total - self.migrated


class MigrationOutcome(str, Enum):
    FAILED = "failed"
    MIGRATED = "migrated"
    NOT_FOUND = "not_found"
