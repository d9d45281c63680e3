"""Migration of user records from the record store into the warehouse."""

from __future__ import annotations

import logging

from services.usermanagement.application.interfaces import WarehouseSink
from services.usermanagement.application.record_store import RecordStore
from services.usermanagement.domain.user import (
    BulkMigrationResult,
    MigratedUserSummary,
    MigrationOutcome,
    MigrationStatus,
)

logger = logging.getLogger(__name__)


class MigrationCoordinator:
    """
    Copies users from the record store into the warehouse sink.

    Stateless: every call re-reads the record store. There is no migration
    cursor and no retry, and two concurrent ``migrate_all`` calls will both
    write every row.
    """

    def __init__(self, *, record_store: RecordStore, sink: WarehouseSink) -> None:
        self._record_store = record_store
        self._sink = sink

    def status(self) -> MigrationStatus:
        """
        Compare the record count with the warehouse row count.

        The two counts come from separate systems with no shared snapshot.
        Re-migrating users makes ``pending`` negative; it is not clamped.
        """
        total = self._record_store.count()
        migrated = self._sink.count_rows()
        return MigrationStatus(total=total, migrated=migrated)

    def migrate_all(self) -> BulkMigrationResult:
        users = self._record_store.list_all()
        if not users:
            logger.info("No users to migrate")
            return BulkMigrationResult.empty()

        logger.info(f"Migrating {len(users)} users")
        result = self._sink.bulk_insert(users)
        logger.info(
            f"Bulk migration finished: {result.success} migrated, {result.failed} failed"
        )
        return result

    def migrate_one(self, user_id: int | str) -> MigrationOutcome:
        try:
            user = self._record_store.get_by_id(user_id)
            if user is None:
                return MigrationOutcome.NOT_FOUND
            if self._sink.insert_row(user):
                return MigrationOutcome.MIGRATED
            return MigrationOutcome.FAILED
        except Exception:
            logger.exception(f"Unexpected error migrating user {user_id}")
            return MigrationOutcome.FAILED

    def sample(self, limit: int) -> list[MigratedUserSummary]:
        return self._sink.sample_rows(limit)
