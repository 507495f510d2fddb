"""
Store service tests

Reads, writes, in-flight coalescing and stale-result protection against the
memory backend.
"""

import asyncio

import pytest

from storekit import (
    NOT_FOUND, BackendUnavailableError, NotFoundError, SelectOptions, TableKey,
    ValidationError, WriteConflictError
)


async def wait_for_call(backend, operation, count=1):
    while backend.calls[operation] < count:
        await asyncio.sleep(0)


class TestReads:

    @pytest.mark.asyncio
    async def test_select_first_returns_row(self, store, seeded):
        record = await store.select_first_async("profile", "p1")

        assert record["email"] == "ada@example.com"
        assert store.peek(TableKey.for_id("profile", "p1")).value is record

    @pytest.mark.asyncio
    async def test_missing_row_is_cached_as_not_found(self, store, seeded):
        record = await store.select_first_async("profile", "nope")

        assert record is None
        assert store.peek(TableKey.for_id("profile", "nope")).value is NOT_FOUND

    @pytest.mark.asyncio
    async def test_no_matches_is_empty_tuple(self, store, seeded):
        rows = await store.select_matches_async("profile", {"account_id": "nobody"})

        assert rows == ()

    @pytest.mark.asyncio
    async def test_list_value_means_any_of(self, store, seeded):
        rows = await store.select_matches_async("profile", {"id": ["p1", "p3"]})

        assert {row["id"] for row in rows} == {"p1", "p3"}

    @pytest.mark.asyncio
    async def test_ordering_and_pagination(self, store, seeded):
        options = SelectOptions(order_by="first_name", order_by_desc=True)
        rows = await store.select_matches_async("profile", {}, options)
        assert [row["first_name"] for row in rows] == ["Linus", "Grace", "Ada"]

        page = await store.select_matches_async(
            "profile", {}, SelectOptions(order_by="first_name", offset=1, limit=1)
        )
        assert [row["first_name"] for row in page] == ["Grace"]

    @pytest.mark.asyncio
    async def test_missing_sort_values_come_first_in_both_directions(self, store, seeded, backend):
        backend.seed("profile", [{"id": "p4", "account_id": "a1"}])

        ascending = await store.select_matches_async(
            "profile", {}, SelectOptions(order_by="first_name")
        )
        descending = await store.select_matches_async(
            "profile", {}, SelectOptions(order_by="first_name", order_by_desc=True)
        )

        assert [row["id"] for row in ascending] == ["p4", "p1", "p2", "p3"]
        assert [row["id"] for row in descending] == ["p4", "p3", "p2", "p1"]

    @pytest.mark.asyncio
    async def test_select_first_matches(self, store, seeded, backend):
        record = await store.select_first_matches_async(
            "segment", {"account_id": "a1"}, SelectOptions(order_by="name")
        )
        missing = await store.select_first_matches_async("segment", {"account_id": "zz"})

        assert record["name"] == "Churn risk"
        assert missing is None

    @pytest.mark.asyncio
    async def test_records_are_immutable(self, store, seeded):
        record = await store.select_first_async("segment", "s9")

        with pytest.raises(TypeError):
            record["name"] = "changed"
        assert record["criteria"] == {"days_inactive": 30}


class TestCoalescing:

    @pytest.mark.asyncio
    async def test_concurrent_loads_share_one_fetch(self, store, seeded, backend):
        results = await asyncio.gather(
            *(store.select_first_async("profile", "p1") for _ in range(5))
        )

        assert backend.calls["get_by_id"] == 1
        assert store.metrics.coalesced == 4
        assert all(result is results[0] for result in results)

    @pytest.mark.asyncio
    async def test_ensure_loaded_hits_cache(self, store, seeded, backend):
        key = TableKey.for_match("segment", {"account_id": "a1"})

        first = await store.ensure_loaded(key)
        second = await store.ensure_loaded(key)

        assert first is second
        assert backend.calls["query"] == 1
        assert store.get_metrics()["hits"] == 1

    @pytest.mark.asyncio
    async def test_cancelled_waiter_does_not_cancel_shared_fetch(self, store, seeded, backend):
        gate = backend.hold_reads()
        key = TableKey.for_id("profile", "p1")
        waiter = asyncio.ensure_future(store.ensure_loaded(key))
        await wait_for_call(backend, "get_by_id")

        waiter.cancel()
        other = asyncio.ensure_future(store.ensure_loaded(key))
        await asyncio.sleep(0)
        gate.set()
        entry = await other

        assert entry.value["id"] == "p1"
        assert backend.calls["get_by_id"] == 1


class TestGenerations:

    @pytest.mark.asyncio
    async def test_update_during_fetch_wins(self, store, seeded, backend):
        gate = backend.hold_reads()
        read = asyncio.ensure_future(store.select_first_async("profile", "p1"))
        await wait_for_call(backend, "get_by_id")

        await store.update_async("profile", "p1", {"email": "new@example.com"})
        gate.set()
        record = await read

        assert record["email"] == "new@example.com"
        assert store.peek(TableKey.for_id("profile", "p1")).value["email"] == "new@example.com"
        assert store.metrics.stale_discards == 1

    @pytest.mark.asyncio
    async def test_insert_during_query_refetches(self, store, seeded, backend):
        gate = backend.hold_reads()
        read = asyncio.ensure_future(store.select_matches_async("segment", {"account_id": "a2"}))
        await wait_for_call(backend, "query")

        await store.insert_async("segment", {"account_id": "a2", "name": "Trial"})
        gate.set()
        rows = await read

        assert [row["name"] for row in rows] == ["Trial"]
        assert backend.calls["query"] == 2


class TestWrites:

    @pytest.mark.asyncio
    async def test_insert_then_select_returns_same_row(self, store, backend):
        inserted = await store.insert_async("segment", {"account_id": "a1", "name": "VIP"})

        assert inserted["id"]
        assert inserted["created_at"]
        fetched = await store.select_first_async("segment", inserted["id"])
        assert dict(fetched) == dict(inserted)

    @pytest.mark.asyncio
    async def test_insert_invalidates_cached_queries(self, store, seeded):
        key = TableKey.for_match("segment", {"account_id": "a2"})
        assert await store.select_matches_async("segment", {"account_id": "a2"}) == ()

        await store.insert_async("segment", {"account_id": "a2", "name": "Trial"})

        assert store.peek(key) is None
        rows = await store.select_matches_async("segment", {"account_id": "a2"})
        assert len(rows) == 1

    @pytest.mark.asyncio
    async def test_update_merges_and_drops_queries(self, store, seeded):
        query = TableKey.for_match("profile", {"account_id": "a1"})
        await store.select_matches_async("profile", {"account_id": "a1"})

        updated = await store.update_async("profile", "p2", {"phone": "+15550100"})

        assert updated["phone"] == "+15550100"
        assert updated["email"] == "grace@example.com"
        assert store.peek(query) is None
        assert store.peek(TableKey.for_id("profile", "p2")).value is updated

    @pytest.mark.asyncio
    async def test_cached_nested_values_can_be_written_back(self, store, seeded):
        record = await store.select_first_async("segment", "s9")

        updated = await store.update_async(
            "segment", "s9", {"criteria": {**record["criteria"], "channels": ("email", "sms")}}
        )

        assert updated["criteria"] == {"days_inactive": 30, "channels": ("email", "sms")}
        assert record["criteria"] == {"days_inactive": 30}

    @pytest.mark.asyncio
    async def test_insert_notifies_once_with_row_cached(self, store, seeded):
        await store.select_matches_async("segment", {"account_id": "a1"})
        row_key = TableKey.for_id("segment", "s42")
        seen = []
        store.subscribe(
            TableKey.for_match("segment", {"account_id": "a1"}),
            lambda key: seen.append(store.peek(row_key))
        )

        await store.insert_async("segment", {"id": "s42", "account_id": "a1", "name": "VIP"})

        assert len(seen) == 1
        assert seen[0].value["name"] == "VIP"

    @pytest.mark.asyncio
    async def test_update_of_missing_row_raises(self, store, seeded):
        with pytest.raises(NotFoundError) as excinfo:
            await store.update_async("profile", "ghost", {"email": "x@example.com"})

        assert isinstance(excinfo.value, WriteConflictError)
        assert excinfo.value.record_id == "ghost"
        assert store.peek(TableKey.for_id("profile", "ghost")).value is NOT_FOUND

    @pytest.mark.asyncio
    async def test_delete_returns_previous_row(self, store, seeded):
        deleted = await store.delete_async("segment", "s9")
        again = await store.delete_async("segment", "s9")

        assert deleted["name"] == "Churn risk"
        assert again is None
        assert store.peek(TableKey.for_id("segment", "s9")).value is NOT_FOUND
        assert await store.select_first_async("segment", "s9") is None

    @pytest.mark.asyncio
    async def test_invalid_row_is_rejected(self, store, backend):
        with pytest.raises(ValidationError):
            await store.insert_async("segment", {"account_id": "a1"})

        assert backend.rows("segment") == []


class TestFailures:

    @pytest.mark.asyncio
    async def test_backend_failure_keeps_cached_value(self, store, seeded, backend):
        key = TableKey.for_id("profile", "p1")
        cached = await store.select_first_async("profile", "p1")
        backend.fail_next("get_by_id")

        with pytest.raises(BackendUnavailableError) as excinfo:
            await store.reload(key)

        assert isinstance(excinfo.value.__cause__, ConnectionError)
        assert excinfo.value.operation == "get_by_id"
        assert store.peek(key).value is cached
        assert not store.in_flight(key)

    @pytest.mark.asyncio
    async def test_failed_write_leaves_cache_untouched(self, store, seeded, backend):
        cached = await store.select_first_async("profile", "p1")
        backend.fail_next("update", TimeoutError("timed out"))

        with pytest.raises(BackendUnavailableError):
            await store.update_async("profile", "p1", {"email": "lost@example.com"})

        assert store.peek(TableKey.for_id("profile", "p1")).value is cached
        assert store.metrics.failures == 1
