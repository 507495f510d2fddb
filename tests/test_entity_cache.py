"""Entity cache: values, generations, invalidation and notification order."""

import pytest

from storekit.persistence.backends.interface import SelectOptions
from storekit.persistence.cache.keys import NOT_FOUND, TableKey, freeze_record, thaw_record


class TestTableKey:

    def test_match_order_does_not_matter(self):
        first = TableKey.for_match("profile", {"account_id": "a1", "email": "x@y.z"})
        second = TableKey.for_match("profile", {"email": "x@y.z", "account_id": "a1"})

        assert first == second
        assert hash(first) == hash(second)

    def test_options_are_part_of_the_key(self):
        plain = TableKey.for_match("message", {"account_id": "a1"})
        sorted_desc = TableKey.for_match(
            "message", {"account_id": "a1"}, SelectOptions(order_by="created_at", order_by_desc=True)
        )

        assert plain != sorted_desc

    def test_by_id_and_query_keys_differ(self):
        by_id = TableKey.for_id("segment", "s1")
        query = TableKey.for_match("segment", {"id": "s1"})

        assert not by_id.is_query
        assert query.is_query
        assert by_id != query

    def test_match_is_returned_as_given(self):
        key = TableKey.for_match("profile", {"id": ["p1", "p2"]})

        assert key.match == {"id": ["p1", "p2"]}

    def test_by_id_requires_an_id(self):
        with pytest.raises(ValueError):
            TableKey.for_id("profile", "")

    def test_not_found_is_falsy_singleton(self):
        assert not NOT_FOUND
        assert repr(NOT_FOUND) == "NOT_FOUND"


class TestEntityCache:

    def test_get_returns_put_value_until_next_write(self, cache):
        key = TableKey.for_id("profile", "p1")
        record = freeze_record({"id": "p1", "email": "a@b.com"})

        assert cache.get(key) is None
        cache.put(key, record)
        assert cache.get(key).value is record
        assert cache.get(key).value is record

        cache.invalidate(key)
        assert cache.get(key) is None

    def test_not_found_is_distinct_from_absent(self, cache):
        key = TableKey.for_id("profile", "missing")

        cache.put(key, NOT_FOUND)

        assert cache.get(key) is not None
        assert cache.get(key).is_not_found

    def test_every_write_moves_generation_forward(self, cache):
        key = TableKey.for_id("profile", "p1")
        other = TableKey.for_id("profile", "p2")

        assert cache.generation(key) == 0
        cache.put(key, freeze_record({"id": "p1"}))
        first = cache.generation(key)
        cache.put(other, freeze_record({"id": "p2"}))
        cache.put(key, freeze_record({"id": "p1", "email": "a@b.com"}))

        assert first > 0
        assert cache.get(key).generation > cache.get(other).generation > first

    def test_fetch_sees_invalidation_of_untracked_key(self, cache):
        key = TableKey.for_match("profile", {"account_id": "a1"})

        started = cache.begin_fetch(key)
        cache.invalidate_table("profile")

        assert cache.generation(key) != started
        cache.end_fetch(key)
        assert cache.tracked_count() == 0

    def test_listeners_see_completed_write(self, cache, registry):
        key = TableKey.for_id("profile", "p1")
        record = freeze_record({"id": "p1"})
        observed = []

        registry.subscribe(key, lambda k: observed.append(cache.get(k).value))
        cache.put(key, record)

        assert observed == [record]

    def test_invalidate_table_clears_only_that_table(self, cache, registry):
        profile_key = TableKey.for_id("profile", "p1")
        query_key = TableKey.for_match("profile", {"account_id": "a1"})
        segment_key = TableKey.for_id("segment", "s1")
        for key in (profile_key, query_key, segment_key):
            cache.put(key, NOT_FOUND if not key.is_query else ())
        notified = []
        registry.subscribe(query_key, notified.append)
        registry.subscribe(segment_key, notified.append)

        cache.invalidate_table("profile")

        assert cache.get(profile_key) is None
        assert cache.get(query_key) is None
        assert cache.get(segment_key) is not None
        assert notified == [query_key]

    def test_apply_write_drops_same_table_queries(self, cache, registry):
        row_key = TableKey.for_id("profile", "p1")
        query_key = TableKey.for_match("profile", {"account_id": "a1"})
        other_query = TableKey.for_match("segment", {"account_id": "a1"})
        cache.put(query_key, (freeze_record({"id": "p1", "email": "old"}),))
        cache.put(other_query, ())
        notified = []
        registry.subscribe(query_key, notified.append)

        cache.apply_write(row_key, freeze_record({"id": "p1", "email": "new"}))

        assert cache.get(row_key).value["email"] == "new"
        assert cache.get(query_key) is None
        assert cache.get(other_query) is not None
        assert notified == [query_key]

    def test_apply_write_rejects_query_keys(self, cache):
        with pytest.raises(ValueError):
            cache.apply_write(TableKey.for_match("profile", {}), ())

    def test_clear_outdates_in_flight_fetches(self, cache, registry):
        cached = TableKey.for_id("profile", "p1")
        fetching = TableKey.for_id("segment", "s1")
        cache.put(cached, NOT_FOUND)
        started = cache.begin_fetch(fetching)
        notified = []
        registry.subscribe(cached, notified.append)

        cache.clear()

        assert len(cache) == 0
        assert cache.generation(fetching) != started
        assert notified == []

    def test_forgotten_keys_release_their_generation(self, cache):
        for offset in range(500):
            key = TableKey.for_match("profile", {"account_id": "a1"}, SelectOptions(offset=offset))
            cache.begin_fetch(key)
            cache.put(key, ())
            cache.end_fetch(key)
        assert cache.tracked_count() == 500

        cache.put(TableKey.for_id("profile", "p1"), NOT_FOUND)
        cache.apply_write(TableKey.for_id("profile", "p1"), NOT_FOUND)
        assert cache.tracked_count() == 1

        cache.clear()
        assert cache.tracked_count() == 0

    def test_insert_caches_row_before_single_notification(self, cache, registry):
        row_key = TableKey.for_id("segment", "s42")
        query_key = TableKey.for_match("segment", {"account_id": "a1"})
        cache.put(query_key, ())
        seen = []
        registry.subscribe(query_key, lambda k: seen.append((cache.get(k), cache.get(row_key))))

        cache.apply_insert(row_key, freeze_record({"id": "s42", "account_id": "a1"}))

        assert len(seen) == 1
        query_entry, row_entry = seen[0]
        assert query_entry is None
        assert row_entry.value["id"] == "s42"

    def test_records_are_read_only(self):
        row = {"id": "s9", "name": "Churn risk", "criteria": {"days_inactive": 30, "channels": ["email"]}}
        record = freeze_record(row)

        with pytest.raises(TypeError):
            record["name"] = "changed"
        with pytest.raises(TypeError):
            record["criteria"]["days_inactive"] = 0
        with pytest.raises(AttributeError):
            record["criteria"]["channels"].append("sms")
        row["criteria"]["days_inactive"] = 1
        assert record["criteria"] == {"days_inactive": 30, "channels": ("email",)}

    def test_thawed_record_is_plain_data(self):
        record = freeze_record({"id": "s9", "criteria": {"tags": ["vip"]}})

        row = thaw_record(record)
        row["criteria"]["tags"].append("new")

        assert row == {"id": "s9", "criteria": {"tags": ["vip", "new"]}}
        assert record["criteria"]["tags"] == ("vip",)
