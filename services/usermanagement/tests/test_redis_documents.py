import json
from unittest.mock import MagicMock

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from services.usermanagement.application.record_store import RecordStore
from services.usermanagement.domain.errors import RemoteFailure
from services.usermanagement.infrastructure.redis_documents import RedisDocumentStore


@pytest.fixture
def client():
    return MagicMock()


@pytest.fixture
def redis_store(client):
    return RedisDocumentStore(client, prefix="users")


def test_allocate_id_uses_counter(client, redis_store):
    client.incr.return_value = 7

    assert redis_store.allocate_id() == 7
    client.incr.assert_called_once_with("users:next_id")


def test_get_decodes_document(client, redis_store):
    client.get.return_value = json.dumps({"email": "a@x.com"})

    assert redis_store.get(3) == {"email": "a@x.com"}
    client.get.assert_called_once_with("users:doc:3")


def test_get_missing(client, redis_store):
    client.get.return_value = None

    assert redis_store.get(3) is None


def test_put_new_document_indexes_fields(client, redis_store):
    pipe = client.pipeline.return_value
    client.mget.return_value = [None]
    document = {"email": "a@x.com", "createdAt": 10.5}

    redis_store.put(1, document)

    pipe.sadd.assert_called_once_with("users:idx:email:a@x.com", 1)
    pipe.srem.assert_not_called()
    pipe.zadd.assert_called_once_with("users:order:createdAt", {"1": 10.5})
    pipe.set.assert_called_once_with("users:doc:1", json.dumps(document))
    pipe.execute.assert_called_once()


def test_put_with_changed_email_drops_old_index_entry(client, redis_store):
    pipe = client.pipeline.return_value
    client.mget.return_value = [json.dumps({"email": "old@x.com", "createdAt": 1.0})]

    redis_store.put(1, {"email": "new@x.com", "createdAt": 1.0})

    pipe.srem.assert_called_once_with("users:idx:email:old@x.com", 1)
    pipe.sadd.assert_called_once_with("users:idx:email:new@x.com", 1)


def test_put_many_uses_one_pipeline(client, redis_store):
    client.mget.return_value = [None, None]

    redis_store.put_many(
        [(1, {"email": "a@x.com", "createdAt": 1.0}), (2, {"email": "b@x.com", "createdAt": 2.0})]
    )

    client.pipeline.assert_called_once()
    client.pipeline.return_value.execute.assert_called_once()


def test_put_many_empty_is_noop(client, redis_store):
    redis_store.put_many([])

    client.mget.assert_not_called()
    client.pipeline.assert_not_called()


def test_delete_many_clears_indexes(client, redis_store):
    pipe = client.pipeline.return_value
    client.mget.return_value = [json.dumps({"email": "a@x.com"}), None]

    redis_store.delete_many([1, 2])

    pipe.srem.assert_called_once_with("users:idx:email:a@x.com", 1)
    pipe.zrem.assert_any_call("users:order:createdAt", "1")
    pipe.zrem.assert_any_call("users:order:createdAt", "2")
    pipe.delete.assert_any_call("users:doc:1")
    pipe.delete.assert_any_call("users:doc:2")
    pipe.execute.assert_called_once()


def test_ordered_query_paginates_on_server(client, redis_store):
    client.zrevrange.return_value = ["2", "1"]
    client.mget.return_value = [
        json.dumps({"email": "b@x.com"}),
        json.dumps({"email": "a@x.com"}),
    ]

    results = redis_store.query(order_by="createdAt", descending=True, limit=10, offset=5)

    client.zrevrange.assert_called_once_with("users:order:createdAt", 5, 14)
    assert results == [(2, {"email": "b@x.com"}), (1, {"email": "a@x.com"})]


def test_ordered_query_without_limit_reads_to_end(client, redis_store):
    client.zrange.return_value = []

    assert redis_store.query(order_by="createdAt") == []
    client.zrange.assert_called_once_with("users:order:createdAt", 0, -1)


def test_filter_query_uses_index(client, redis_store):
    client.smembers.return_value = {"3"}
    client.mget.return_value = [json.dumps({"email": "c@x.com"})]

    results = redis_store.query(filter_field="email", filter_value="c@x.com", limit=1)

    client.smembers.assert_called_once_with("users:idx:email:c@x.com")
    assert results == [(3, {"email": "c@x.com"})]


def test_filter_query_skips_vanished_documents(client, redis_store):
    client.smembers.return_value = {"3"}
    client.mget.return_value = [None]

    assert redis_store.query(filter_field="email", filter_value="c@x.com") == []


def test_query_rejects_unindexed_field(redis_store):
    with pytest.raises(ValueError):
        redis_store.query(filter_field="phone", filter_value="123")


def test_zero_limit_returns_nothing(client, redis_store):
    assert redis_store.query(order_by="createdAt", limit=0) == []
    client.zrange.assert_not_called()


def test_keys_scan_document_keys_only(client, redis_store):
    client.scan_iter.return_value = iter(["users:doc:1", b"users:doc:22"])

    assert list(redis_store.keys()) == [1, 22]
    client.scan_iter.assert_called_once_with(match="users:doc:*", count=500)


def test_keys_yield_each_id_once_when_scan_repeats(client, redis_store):
    client.scan_iter.return_value = iter(["users:doc:1", "users:doc:2", "users:doc:1"])

    assert list(redis_store.keys()) == [1, 2]


def test_count_over_redis_ignores_repeated_scan_keys(client, redis_store):
    client.scan_iter.return_value = iter(["users:doc:1", "users:doc:2", "users:doc:1"])

    assert RecordStore(redis_store).count() == 2


def test_redis_errors_become_remote_failures(client, redis_store):
    client.incr.side_effect = RedisConnectionError("down")

    with pytest.raises(RemoteFailure):
        redis_store.allocate_id()
