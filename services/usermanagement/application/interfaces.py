from __future__ import annotations

from typing import TYPE_CHECKING, Any, Iterable, Iterator, Mapping, Protocol, Sequence

if TYPE_CHECKING:
    from services.usermanagement.domain.user import (
        BulkMigrationResult,
        MigratedUserSummary,
        User,
    )

Document = Mapping[str, Any]


class DocumentStore(Protocol):
    """Key/document driver consumed by the record store.

    Keys are store-allocated integers. Documents are JSON-safe mappings.
    Single-key reads observe earlier writes to the same key; nothing spans
    keys transactionally.
    """

    def allocate_id(self) -> int: ...

    def get(self, key: int) -> dict[str, Any] | None: ...

    def put(self, key: int, document: Document) -> None: ...

    def put_many(self, items: Sequence[tuple[int, Document]]) -> None: ...

    def delete(self, key: int) -> None: ...

    def delete_many(self, keys: Sequence[int]) -> None: ...

    def query(
        self,
        *,
        filter_field: str | None = None,
        filter_value: object = None,
        order_by: str | None = None,
        descending: bool = False,
        limit: int | None = None,
        offset: int = 0,
    ) -> list[tuple[int, dict[str, Any]]]: ...

    def keys(self) -> Iterator[int]: ...


class WarehouseSink(Protocol):
    def ensure_schema(self) -> None: ...

    def insert_row(self, user: "User") -> bool: ...

    def bulk_insert(self, users: Iterable["User"]) -> "BulkMigrationResult": ...

    def count_rows(self) -> int: ...

    def sample_rows(self, limit: int) -> list["MigratedUserSummary"]: ...
