"""Document store implementation using Redis."""

from __future__ import annotations

import json
import logging
from contextlib import contextmanager
from typing import Any, Iterator, Sequence

from redis import Redis
from redis.exceptions import RedisError

from services.usermanagement.application.interfaces import Document, DocumentStore
from services.usermanagement.config import UserManagementConfig
from services.usermanagement.domain.errors import RemoteFailure

LOGGER = logging.getLogger(__name__)


@contextmanager
def _remote_call(operation: str) -> Iterator[None]:
    try:
        yield
    except RedisError as exc:
        LOGGER.error("Redis %s failed: %s", operation, exc)
        raise RemoteFailure(f"Redis {operation} failed: {exc}") from exc


def _text(value: bytes | str) -> str:
    return value.decode() if isinstance(value, bytes) else value


class RedisDocumentStore(DocumentStore):
    """
    Documents stored as JSON strings, one key per document.

    Layout under ``prefix``:
        ``<prefix>:next_id``                  id counter
        ``<prefix>:doc:<id>``                 document body
        ``<prefix>:idx:<field>:<value>``      ids with that field value
        ``<prefix>:order:<field>``            ids scored by a numeric field
    """

    def __init__(
        self,
        client: Redis,
        *,
        prefix: str = "users",
        indexed_fields: Sequence[str] = ("email",),
        ordered_fields: Sequence[str] = ("createdAt",),
        scan_count: int = 500,
    ) -> None:
        self._client = client
        self._prefix = prefix
        self._indexed_fields = tuple(indexed_fields)
        self._ordered_fields = tuple(ordered_fields)
        self._scan_count = scan_count

    def _doc_key(self, key: int) -> str:
        return f"{self._prefix}:doc:{key}"

    def _index_key(self, field: str, value: object) -> str:
        return f"{self._prefix}:idx:{field}:{value}"

    def _order_key(self, field: str) -> str:
        return f"{self._prefix}:order:{field}"

    def allocate_id(self) -> int:
        with _remote_call("id allocation"):
            return int(self._client.incr(f"{self._prefix}:next_id"))

    def get(self, key: int) -> dict[str, Any] | None:
        with _remote_call("get"):
            raw = self._client.get(self._doc_key(key))
        if raw is None:
            return None
        return json.loads(raw)

    def put(self, key: int, document: Document) -> None:
        self.put_many([(key, document)])

    def put_many(self, items: Sequence[tuple[int, Document]]) -> None:
        if not items:
            return
        with _remote_call("put"):
            previous = self._client.mget([self._doc_key(key) for key, _ in items])
            pipe = self._client.pipeline()
            for (key, document), raw in zip(items, previous):
                old = json.loads(raw) if raw is not None else {}
                for field in self._indexed_fields:
                    if field in old and old[field] != document.get(field):
                        pipe.srem(self._index_key(field, old[field]), key)
                    if field in document:
                        pipe.sadd(self._index_key(field, document[field]), key)
                for field in self._ordered_fields:
                    if field in document:
                        pipe.zadd(self._order_key(field), {str(key): float(document[field])})
                pipe.set(self._doc_key(key), json.dumps(dict(document)))
            pipe.execute()

    def delete(self, key: int) -> None:
        self.delete_many([key])

    def delete_many(self, keys: Sequence[int]) -> None:
        if not keys:
            return
        with _remote_call("delete"):
            previous = self._client.mget([self._doc_key(key) for key in keys])
            pipe = self._client.pipeline()
            for key, raw in zip(keys, previous):
                if raw is not None:
                    old = json.loads(raw)
                    for field in self._indexed_fields:
                        if field in old:
                            pipe.srem(self._index_key(field, old[field]), key)
                for field in self._ordered_fields:
                    pipe.zrem(self._order_key(field), str(key))
                pipe.delete(self._doc_key(key))
            pipe.execute()

    def query(
        self,
        *,
        filter_field: str | None = None,
        filter_value: object = None,
        order_by: str | None = None,
        descending: bool = False,
        limit: int | None = None,
        offset: int = 0,
    ) -> list[tuple[int, dict[str, Any]]]:
        if limit == 0:
            return []
        if filter_field is not None and filter_field not in self._indexed_fields:
            raise ValueError(f"Field {filter_field!r} is not indexed")
        if order_by is not None and order_by not in self._ordered_fields:
            raise ValueError(f"Field {order_by!r} is not ordered")

        if filter_field is None and order_by is not None:
            # Server-side pagination over the ordering index.
            stop = -1 if limit is None else offset + limit - 1
            with _remote_call("query"):
                if descending:
                    members = self._client.zrevrange(self._order_key(order_by), offset, stop)
                else:
                    members = self._client.zrange(self._order_key(order_by), offset, stop)
            return self._load([int(_text(member)) for member in members])

        if filter_field is not None:
            with _remote_call("query"):
                members = self._client.smembers(self._index_key(filter_field, filter_value))
            ids = sorted(int(_text(member)) for member in members)
        else:
            ids = sorted(self.keys())

        results = self._load(ids)
        if order_by is not None:
            results.sort(key=lambda item: item[1].get(order_by, 0), reverse=descending)
        end = None if limit is None else offset + limit
        return results[offset:end]

    def keys(self) -> Iterator[int]:
        pattern = f"{self._prefix}:doc:*"
        seen: set[int] = set()
        # SCAN may return a key more than once.
        with _remote_call("key scan"):
            for raw in self._client.scan_iter(match=pattern, count=self._scan_count):
                key = int(_text(raw).rsplit(":", 1)[1])
                if key in seen:
                    continue
                seen.add(key)
                yield key

    def _load(self, ids: list[int]) -> list[tuple[int, dict[str, Any]]]:
        if not ids:
            return []
        with _remote_call("get"):
            raws = self._client.mget([self._doc_key(key) for key in ids])
        return [
            (key, json.loads(raw)) for key, raw in zip(ids, raws) if raw is not None
        ]


def create_redis_client(config: UserManagementConfig) -> Redis:
    return Redis(
        host=config.redis_host,
        port=config.redis_port,
        db=config.redis_db,
        decode_responses=True,
    )


def create_document_store(
    config: UserManagementConfig, client: Redis | None = None
) -> RedisDocumentStore:
    return RedisDocumentStore(
        client or create_redis_client(config), prefix=config.record_prefix
    )
