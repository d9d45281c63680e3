"""Translation between user records and warehouse rows."""

from __future__ import annotations

from datetime import date, datetime, timezone

from services.usermanagement.domain.user import User, WarehouseRow


def to_epoch_seconds(value: datetime) -> float:
    """Seconds since the epoch, keeping the fractional part."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.timestamp()


def to_date(value: date | datetime) -> date:
    if isinstance(value, datetime):
        return value.date()
    return value


def to_warehouse_row(user: User, *, migrated_at: datetime | None = None) -> WarehouseRow:
    """
    Build the warehouse copy of a stored user.

    The password never leaves the record store. ``migrated_at`` defaults to
    the current time.

    Raises:
        ValueError: If the user has not been persisted yet
    """
    if user.user_id is None or user.created_at is None:
        raise ValueError("Only stored users can be migrated")

    migrated = migrated_at or datetime.now(timezone.utc)
    return WarehouseRow(
        id=str(user.user_id),
        name=user.name,
        dob=to_date(user.dob),
        email=user.email,
        phone=user.phone,
        gender=user.gender,
        address=user.address,
        created_at=to_epoch_seconds(user.created_at),
        migrated_at=to_epoch_seconds(migrated),
    )
