"""Error taxonomy for the user management core."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from services.usermanagement.domain.user import BulkMigrationResult


class UserManagementError(Exception):
    """Base class for all user management errors."""


class ValidationError(UserManagementError):
    """Raised when input is malformed.

    Reserved for callers that validate outside the core; ``RecordStore``
    itself never raises it.
    """


class NotFoundError(UserManagementError):
    """Raised when an id does not resolve to a live record.

    ``RecordStore`` lookups return ``None``; the HTTP layer raises this when a
    route needs the record and maps it to 404.
    """


class DuplicateEmailError(UserManagementError):
    """Raised when a create or update would give two records the same email."""

    def __init__(self, email: str) -> None:
        super().__init__(f"Email already exists: {email}")
        self.email = email


class RemoteFailure(UserManagementError):
    """Raised when a record store or warehouse call fails."""


class PartialBatchFailure(UserManagementError):
    """Raised when a bulk operation completed with some failed elements."""

    def __init__(self, result: "BulkMigrationResult") -> None:
        super().__init__(
            f"{result.failed} of {result.total} records failed to migrate"
        )
        self.result = result
