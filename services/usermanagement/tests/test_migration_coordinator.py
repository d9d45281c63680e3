import pytest

from services.usermanagement.application.migration import MigrationCoordinator
from services.usermanagement.domain.errors import PartialBatchFailure
from services.usermanagement.domain.user import MigrationOutcome


class ExplodingSink:
    def insert_row(self, user):
        raise RuntimeError("warehouse unavailable")


def test_bulk_migration_of_three_users(coordinator, store, sink, user_factory):
    for i in range(3):
        store.create(user_factory(f"user{i}@x.com"))
    before = sink.count_rows()

    result = coordinator.migrate_all()

    assert (result.total, result.success, result.failed, result.errors) == (3, 3, 0, [])
    assert sink.count_rows() == before + 3


def test_migrate_all_on_empty_store_is_noop(coordinator, sink):
    result = coordinator.migrate_all()

    assert result.is_empty
    assert sink.count_rows() == 0


def test_status_counts_both_stores(coordinator, store, user_factory):
    store.create(user_factory("a@x.com"))
    store.create(user_factory("b@x.com"))
    coordinator.migrate_one(store.get_by_email("a@x.com").user_id)

    current = coordinator.status()

    assert (current.total, current.migrated, current.pending) == (2, 1, 1)


def test_status_pending_goes_negative_after_remigration(coordinator, store, user_factory):
    store.create(user_factory("a@x.com"))
    store.create(user_factory("b@x.com"))

    coordinator.migrate_all()
    coordinator.migrate_all()
    current = coordinator.status()

    assert current.migrated >= current.total
    assert current.pending == -2


def test_migrate_one_not_found(coordinator):
    assert coordinator.migrate_one("12345") is MigrationOutcome.NOT_FOUND
    assert coordinator.migrate_one("garbage") is MigrationOutcome.NOT_FOUND


def test_migrate_one_then_sample(coordinator, store, user_factory):
    user_id = store.create(user_factory())

    assert coordinator.migrate_one(user_id) is MigrationOutcome.MIGRATED

    rows = coordinator.sample(10)
    assert len(rows) == 1
    assert rows[0].id == str(user_id)
    assert rows[0].name == "Alice Smith"
    assert rows[0].email == "alice@x.com"
    assert rows[0].phone == "1234567890"


def test_migrate_one_unexpected_error_is_failure(store, user_factory):
    user_id = store.create(user_factory())
    coordinator = MigrationCoordinator(record_store=store, sink=ExplodingSink())

    assert coordinator.migrate_one(user_id) is MigrationOutcome.FAILED


def test_partial_failures_are_reported_not_raised(coordinator, store, user_factory):
    store.create(user_factory("ok@x.com"))
    store.create(user_factory("z" * 400 + "@x.com"))

    result = coordinator.migrate_all()

    assert result.total == 2
    assert result.success == 1
    assert result.failed == 1
    assert len(result.errors) == 1
    with pytest.raises(PartialBatchFailure) as excinfo:
        result.raise_for_failures()
    assert excinfo.value.result is result
