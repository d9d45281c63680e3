from datetime import date
from itertools import count

import pytest
from sqlalchemy import create_engine
from sqlalchemy.pool import StaticPool

from services.usermanagement.application import record_store as record_store_module
from services.usermanagement.application.migration import MigrationCoordinator
from services.usermanagement.application.record_store import RecordStore
from services.usermanagement.domain.errors import RemoteFailure
from services.usermanagement.domain.user import User
from services.usermanagement.infrastructure.warehouse import SqlWarehouseSink


class InMemoryDocumentStore:
    def __init__(self) -> None:
        self.documents: dict[int, dict] = {}
        self.put_batches: list[int] = []
        self.delete_batches: list[int] = []
        self.fail_put_many = False
        self.fail_delete_many = False
        self._next_id = 1000

    @property
    def allocated(self) -> int:
        return self._next_id - 1000

    def allocate_id(self) -> int:
        self._next_id += 1
        return self._next_id

    def get(self, key: int):
        document = self.documents.get(key)
        return dict(document) if document is not None else None

    def put(self, key: int, document) -> None:
        self.documents[key] = dict(document)

    def put_many(self, items) -> None:
        if self.fail_put_many:
            raise RemoteFailure("put failed")
        self.put_batches.append(len(items))
        for key, document in items:
            self.documents[key] = dict(document)

    def delete(self, key: int) -> None:
        self.documents.pop(key, None)

    def delete_many(self, keys) -> None:
        if self.fail_delete_many:
            raise RemoteFailure("delete failed")
        self.delete_batches.append(len(keys))
        for key in keys:
            self.documents.pop(key, None)

    def query(
        self,
        *,
        filter_field=None,
        filter_value=None,
        order_by=None,
        descending=False,
        limit=None,
        offset=0,
    ):
        items = sorted(self.documents.items())
        if filter_field is not None:
            items = [item for item in items if item[1].get(filter_field) == filter_value]
        if order_by is not None:
            items.sort(key=lambda item: (item[1][order_by], item[0]), reverse=descending)
        end = None if limit is None else offset + limit
        return [(key, dict(document)) for key, document in items[offset:end]]

    def keys(self):
        return iter(list(self.documents))


@pytest.fixture
def ticking_clock(monkeypatch):
    """Give every store write a distinct, increasing timestamp."""
    ticks = count(1_700_000_000)
    monkeypatch.setattr(record_store_module, "_now", lambda: float(next(ticks)))


@pytest.fixture
def documents() -> InMemoryDocumentStore:
    return InMemoryDocumentStore()


@pytest.fixture
def store(documents) -> RecordStore:
    return RecordStore(documents)


@pytest.fixture
def warehouse_engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    yield engine
    engine.dispose()


@pytest.fixture
def sink(warehouse_engine) -> SqlWarehouseSink:
    sink = SqlWarehouseSink(warehouse_engine, dataset=None, table_name="users")
    sink.ensure_schema()
    return sink


@pytest.fixture
def coordinator(store, sink) -> MigrationCoordinator:
    return MigrationCoordinator(record_store=store, sink=sink)


def make_user(
    email: str = "alice@x.com",
    *,
    name: str = "Alice Smith",
    phone: str = "1234567890",
    password: str = "s3cret",
) -> User:
    return User(
        name=name,
        dob=date(1990, 1, 1),
        email=email,
        password=password,
        phone=phone,
        gender="Female",
        address="1 Main St",
    )


@pytest.fixture
def user_factory():
    return make_user
