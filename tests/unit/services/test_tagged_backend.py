"""
Unit tests for TaggedExpiringCacheBackend.

Runs the backend against the in-memory gateway with a controllable clock.
"""

from unittest.mock import MagicMock

import pytest

from tagged_cache.domain.cache.entities import StoreRecord
from tagged_cache.domain.cache.exceptions import (
    BulkDeletionError,
    InvalidArgumentError,
    InvalidDataError,
    StoreOperationError,
    StoreUnavailableError,
)
from tagged_cache.domain.cache.repository_interfaces import StoreGateway
from tagged_cache.domain.cache.value_objects import IndexEntry
from tagged_cache.infrastructure.memory.gateway import InMemoryStoreGateway
from tagged_cache.services.cache.tagged_backend import TaggedExpiringCacheBackend

BUCKET = "test_cache"


class FlakyGateway(InMemoryStoreGateway):
    """In-memory gateway whose deletes fail for selected keys."""

    def __init__(self, failing_keys=()):
        super().__init__()
        self.failing_keys = set(failing_keys)
        self.delete_attempts = []

    def delete_record(self, bucket, key):
        self.delete_attempts.append(key)
        if key in self.failing_keys:
            raise StoreUnavailableError(f"timeout deleting {key}", operation="delete_record")
        super().delete_record(bucket, key)


class TestSetAndGet:
    """Test point writes and reads."""

    def test_get_after_set(self, backend):
        backend.set("Foo", b"Bar")
        assert backend.get("Foo") == b"Bar"

    def test_has_after_set(self, backend):
        backend.set("Foo", b"Bar")
        assert backend.has("Foo")

    def test_get_missing_entry(self, backend):
        assert backend.get("Foo") is None
        assert not backend.has("Foo")

    def test_set_overwrites_payload(self, backend):
        backend.set("Foo", b"Bar")
        backend.set("Foo", b"Baz")
        assert backend.get("Foo") == b"Baz"

    def test_binary_payload_round_trips_unchanged(self, backend):
        payload = bytes(range(256))
        backend.set("blob", payload)
        assert backend.get("blob") == payload

    def test_empty_payload_is_a_hit(self, backend):
        backend.set("empty", b"")
        assert backend.get("empty") == b""
        assert backend.has("empty")

    def test_written_indexes(self, backend, gateway, clock):
        backend.set("Foo", b"Bar", ["A", "B"], lifetime=60)

        record = gateway.get_record(BUCKET, "Foo")
        assert record.indexes == frozenset(
            {
                IndexEntry("cache_int", 1),
                IndexEntry("tag_bin", "A"),
                IndexEntry("tag_bin", "B"),
                IndexEntry("expiration_int", int(clock.now) + 60),
            }
        )

    def test_set_passes_previous_revision(self, clock):
        gateway = MagicMock(spec=StoreGateway)
        gateway.get_record.return_value = StoreRecord("Foo", b"old", revision="vclock-1")
        backend = TaggedExpiringCacheBackend(gateway, bucket_name=BUCKET, clock=clock)

        backend.set("Foo", b"new")

        gateway.put_record.assert_called_once()
        args, kwargs = gateway.put_record.call_args
        assert args[:3] == (BUCKET, "Foo", b"new")
        assert kwargs["revision"] == "vclock-1"

    def test_first_write_has_no_revision(self, clock):
        gateway = MagicMock(spec=StoreGateway)
        gateway.get_record.return_value = None
        backend = TaggedExpiringCacheBackend(gateway, bucket_name=BUCKET, clock=clock)

        backend.set("Foo", b"new")

        assert gateway.put_record.call_args.kwargs["revision"] is None


class TestOverwriteConsistency:
    """Overwriting an entry replaces its tags and expiration, never merges them."""

    def test_retagging_moves_entry_between_tags(self, backend):
        backend.set("Foo", b"Bar", ["A"])
        backend.set("Foo", b"Bar", ["B"])

        assert backend.find_identifiers_by_tag("A") == []
        assert backend.find_identifiers_by_tag("B") == ["Foo"]

    def test_flush_of_old_tag_spares_retagged_entry(self, backend):
        backend.set("Foo", b"Bar", ["A"])
        backend.set("Foo", b"Bar", ["B"])

        backend.flush_by_tag("A")

        assert backend.get("Foo") == b"Bar"

    def test_overwrite_without_lifetime_drops_expiration(self, backend, gateway, clock):
        backend.set("Foo", b"Bar", lifetime=10)
        backend.set("Foo", b"Bar", lifetime=0)

        record = gateway.get_record(BUCKET, "Foo")
        assert record.index_values("expiration_int") == []

        clock.advance(3600)
        backend.collect_garbage()
        assert backend.get("Foo") == b"Bar"

    def test_overwrite_without_tags_drops_tags(self, backend):
        backend.set("Foo", b"Bar", ["A"])
        backend.set("Foo", b"Bar")

        assert backend.find_identifiers_by_tag("A") == []


class TestLifetime:
    """Test expiration and garbage collection."""

    def test_zero_lifetime_never_expires(self, backend, clock):
        backend.set("Foo", b"Bar", lifetime=0)

        clock.advance(10 * 365 * 24 * 3600)
        backend.collect_garbage()

        assert backend.get("Foo") == b"Bar"

    def test_expired_entry_is_absent_and_deleted_on_read(self, backend, gateway, clock):
        backend.set("Foo", b"Bar", lifetime=1)

        clock.advance(2)

        assert backend.get("Foo") is None
        assert gateway.get_record(BUCKET, "Foo") is None

    def test_has_agrees_with_get_on_expired_entry(self, backend, gateway, clock):
        backend.set("Foo", b"Bar", lifetime=1)

        clock.advance(2)

        assert not backend.has("Foo")
        assert gateway.get_record(BUCKET, "Foo") is None

    def test_entry_is_live_at_its_expiration_second(self, backend, clock):
        clock.now = 1_700_000_000.0
        backend.set("Foo", b"Bar", lifetime=1)

        clock.now = 1_700_000_001.0
        assert backend.get("Foo") == b"Bar"

        clock.now = 1_700_000_001.5
        assert backend.get("Foo") is None

    def test_collect_garbage_removes_only_expired_entries(self, backend, gateway, clock):
        backend.set("short", b"1", lifetime=1)
        backend.set("long", b"2", lifetime=1000)
        backend.set("forever", b"3")

        clock.advance(2)
        backend.collect_garbage()

        assert sorted(gateway.keys(BUCKET)) == ["forever", "long"]

    def test_collect_garbage_spares_entry_expiring_now(self, backend, gateway, clock):
        clock.now = 1_700_000_000.0
        backend.set("Foo", b"Bar", lifetime=5)

        clock.now = 1_700_000_005.0
        backend.collect_garbage()
        assert gateway.get_record(BUCKET, "Foo") is not None

        clock.now = 1_700_000_005.5
        backend.collect_garbage()
        assert gateway.get_record(BUCKET, "Foo") is None

    def test_collect_garbage_is_idempotent(self, backend, clock):
        backend.set("Foo", b"Bar", lifetime=1)
        clock.advance(5)

        backend.collect_garbage()
        backend.collect_garbage()

        assert not backend.has("Foo")

    def test_default_lifetime_applies_when_omitted(self, gateway, clock):
        backend = TaggedExpiringCacheBackend(
            gateway, bucket_name=BUCKET, default_lifetime=60, clock=clock
        )
        backend.set("Foo", b"Bar")

        record = gateway.get_record(BUCKET, "Foo")
        assert record.index_values("expiration_int") == [int(clock.now) + 60]

        clock.advance(61)
        assert backend.get("Foo") is None

    def test_explicit_zero_overrides_default_lifetime(self, gateway, clock):
        backend = TaggedExpiringCacheBackend(
            gateway, bucket_name=BUCKET, default_lifetime=60, clock=clock
        )
        backend.set("Foo", b"Bar", lifetime=0)

        clock.advance(3600)
        assert backend.get("Foo") == b"Bar"

    def test_invalid_default_lifetime(self, gateway):
        with pytest.raises(InvalidArgumentError):
            TaggedExpiringCacheBackend(gateway, default_lifetime=-5)


class TestRemove:
    """Test single entry removal."""

    def test_remove_existing_entry(self, backend):
        backend.set("Foo", b"Bar")

        assert backend.remove("Foo") is True
        assert not backend.has("Foo")

    def test_remove_missing_entry(self, backend):
        assert backend.remove("Foo") is False

    def test_remove_drops_tag_membership(self, backend):
        backend.set("Foo", b"Bar", ["A"])
        backend.remove("Foo")

        assert backend.find_identifiers_by_tag("A") == []


class TestTags:
    """Test tag lookups and tag flushes."""

    def test_find_identifiers_by_tag(self, backend):
        backend.set("BarFoo", b"1", ["UnrelatedTag"])
        backend.set("foo", b"2", ["UnitTestTag%test", "UnitTestTag%boring"])
        backend.set("bar", b"3", ["UnitTestTag%test"])

        assert sorted(backend.find_identifiers_by_tag("UnitTestTag%test")) == ["bar", "foo"]
        assert backend.find_identifiers_by_tag("UnitTestTag%boring") == ["foo"]

    def test_unknown_tag_matches_nothing(self, backend):
        backend.set("Foo", b"Bar", ["A"])
        assert backend.find_identifiers_by_tag("Nope") == []

    def test_tags_with_separators_are_distinct(self, backend):
        backend.set("comma", b"1", ["a,b"])
        backend.set("a", b"2", ["a"])
        backend.set("space", b"3", ["a b/c"])

        assert backend.find_identifiers_by_tag("a,b") == ["comma"]
        assert backend.find_identifiers_by_tag("a") == ["a"]
        assert backend.find_identifiers_by_tag("a b/c") == ["space"]

    def test_flush_by_tag(self, backend):
        backend.set("BarFoo", b"1", ["UnrelatedTag"])
        backend.set("foo", b"2", ["UnitTestTag%test", "UnitTestTag%boring"])
        backend.set("bar", b"3", ["UnitTestTag%test"])

        backend.flush_by_tag("UnitTestTag%test")

        assert not backend.has("foo")
        assert not backend.has("bar")
        assert backend.has("BarFoo")
        assert backend.find_identifiers_by_tag("UnitTestTag%boring") == []

    def test_flush_by_unused_tag_is_noop(self, backend):
        backend.set("Foo", b"Bar", ["A"])
        backend.flush_by_tag("B")
        assert backend.has("Foo")

    def test_flush_by_tags(self, backend):
        backend.set("one", b"1", ["A"])
        backend.set("two", b"2", ["B"])
        backend.set("both", b"3", ["A", "B"])
        backend.set("other", b"4", ["C"])

        backend.flush_by_tags(["A", "B"])

        assert not backend.has("one")
        assert not backend.has("two")
        assert not backend.has("both")
        assert backend.has("other")

    def test_flush_by_tags_validates_before_deleting(self, backend):
        backend.set("one", b"1", ["A"])

        with pytest.raises(InvalidArgumentError):
            backend.flush_by_tags(["A", ""])

        assert backend.has("one")


class TestFlush:
    """Test whole cache flush."""

    def test_flush_removes_everything(self, backend, gateway):
        backend.set("Foo", b"1")
        backend.set("Bar", b"2", ["A"])
        backend.set("Baz", b"3", lifetime=100)

        backend.flush()

        assert gateway.keys(BUCKET) == []
        assert not backend.has("Foo")

    def test_flush_is_idempotent(self, backend):
        backend.flush()
        backend.set("Foo", b"1")
        backend.flush()
        backend.flush()

        assert not backend.has("Foo")

    def test_flush_leaves_other_buckets(self, gateway, clock):
        first = TaggedExpiringCacheBackend(gateway, bucket_name="first", clock=clock)
        second = TaggedExpiringCacheBackend(gateway, bucket_name="second", clock=clock)
        first.set("Foo", b"1", ["A"])
        second.set("Foo", b"2", ["A"])

        first.flush()

        assert not first.has("Foo")
        assert second.get("Foo") == b"2"
        assert second.find_identifiers_by_tag("A") == ["Foo"]

    def test_flush_leaves_foreign_records(self, backend, gateway):
        gateway.put_record(BUCKET, "foreign", b"x", [IndexEntry("tag_bin", "A")])
        backend.set("Foo", b"1")

        backend.flush()

        assert gateway.keys(BUCKET) == ["foreign"]


class TestBulkFailures:
    """Test best-effort semantics of bulk deletions."""

    @pytest.fixture
    def flaky_gateway(self):
        return FlakyGateway(failing_keys={"b"})

    @pytest.fixture
    def flaky_backend(self, flaky_gateway, clock, metrics):
        return TaggedExpiringCacheBackend(
            flaky_gateway, bucket_name=BUCKET, clock=clock, metrics=metrics
        )

    def test_flush_continues_past_failures(self, flaky_backend, flaky_gateway):
        for key in ("a", "b", "c"):
            flaky_backend.set(key, b"x")

        with pytest.raises(BulkDeletionError) as exc_info:
            flaky_backend.flush()

        assert sorted(flaky_gateway.delete_attempts) == ["a", "b", "c"]
        assert flaky_gateway.keys(BUCKET) == ["b"]
        assert exc_info.value.keys == ["b"]
        assert exc_info.value.attempted == 3
        assert "timeout deleting b" in exc_info.value.failed_keys["b"]

    def test_flush_by_tag_reports_failures(self, flaky_backend):
        flaky_backend.set("a", b"x", ["T"])
        flaky_backend.set("b", b"x", ["T"])

        with pytest.raises(BulkDeletionError) as exc_info:
            flaky_backend.flush_by_tag("T")

        assert exc_info.value.operation == "flush_by_tag"
        assert exc_info.value.error_code == "CACHE_BULK_DELETION_FAILED"
        assert not flaky_backend.has("a")

    def test_collect_garbage_reports_failures(self, flaky_backend, clock, metrics):
        flaky_backend.set("a", b"x", lifetime=1)
        flaky_backend.set("b", b"x", lifetime=1)
        clock.advance(5)

        with pytest.raises(BulkDeletionError):
            flaky_backend.collect_garbage()

        labels = {"bucket": BUCKET, "operation": "collect_garbage"}
        assert metrics.sample("tagged_cache_bulk_delete_failures_total", labels) == 1
        deleted = {"bucket": BUCKET, "cause": "collect_garbage"}
        assert metrics.sample("tagged_cache_deletions_total", deleted) == 1

    def test_query_failure_propagates(self, clock):
        gateway = MagicMock(spec=StoreGateway)
        gateway.query_index_exact.side_effect = StoreUnavailableError(
            "connection refused", operation="query_index"
        )
        backend = TaggedExpiringCacheBackend(gateway, bucket_name=BUCKET, clock=clock)

        with pytest.raises(StoreUnavailableError):
            backend.flush()

        gateway.delete_record.assert_not_called()

    def test_store_operation_errors_are_collected(self, gateway, clock):
        gateway.delete_record = MagicMock(
            side_effect=StoreOperationError("unexpected status", status_code=500)
        )
        backend = TaggedExpiringCacheBackend(gateway, bucket_name=BUCKET, clock=clock)
        backend.set("a", b"x")

        with pytest.raises(BulkDeletionError) as exc_info:
            backend.flush()

        assert exc_info.value.keys == ["a"]


class TestInvalidInput:
    """Invalid input is rejected before the store is contacted."""

    @pytest.fixture
    def mock_gateway(self):
        return MagicMock(spec=StoreGateway)

    @pytest.fixture
    def strict_backend(self, mock_gateway, clock):
        return TaggedExpiringCacheBackend(mock_gateway, bucket_name=BUCKET, clock=clock)

    @pytest.mark.parametrize("payload", ["text", 42, None, bytearray(b"x")])
    def test_set_rejects_non_bytes_payload(self, strict_backend, mock_gateway, payload):
        with pytest.raises(InvalidDataError):
            strict_backend.set("Foo", payload)
        assert mock_gateway.mock_calls == []

    @pytest.mark.parametrize("identifier", [None, 1, b"Foo", ""])
    def test_set_rejects_invalid_identifier(self, strict_backend, mock_gateway, identifier):
        with pytest.raises(InvalidArgumentError):
            strict_backend.set(identifier, b"Bar")
        assert mock_gateway.mock_calls == []

    def test_set_rejects_invalid_tag(self, strict_backend, mock_gateway):
        with pytest.raises(InvalidArgumentError):
            strict_backend.set("Foo", b"Bar", ["A", 7])
        assert mock_gateway.mock_calls == []

    @pytest.mark.parametrize("lifetime", [-1, 1.5, "60"])
    def test_set_rejects_invalid_lifetime(self, strict_backend, mock_gateway, lifetime):
        with pytest.raises(InvalidArgumentError):
            strict_backend.set("Foo", b"Bar", lifetime=lifetime)
        assert mock_gateway.mock_calls == []

    @pytest.mark.parametrize("operation", ["get", "has", "remove"])
    def test_point_operations_reject_invalid_identifier(
        self, strict_backend, mock_gateway, operation
    ):
        with pytest.raises(InvalidArgumentError):
            getattr(strict_backend, operation)(12)
        assert mock_gateway.mock_calls == []

    @pytest.mark.parametrize("operation", ["find_identifiers_by_tag", "flush_by_tag"])
    def test_tag_operations_reject_invalid_tag(self, strict_backend, mock_gateway, operation):
        with pytest.raises(InvalidArgumentError):
            getattr(strict_backend, operation)(None)
        assert mock_gateway.mock_calls == []


class TestStoreFailures:
    """Store failures surface unchanged to the caller."""

    def test_unavailable_store_on_get(self, clock):
        gateway = MagicMock(spec=StoreGateway)
        gateway.get_record.side_effect = StoreUnavailableError("timed out", operation="get_record")
        backend = TaggedExpiringCacheBackend(gateway, bucket_name=BUCKET, clock=clock)

        with pytest.raises(StoreUnavailableError):
            backend.get("Foo")

    def test_failed_write_is_reported(self, clock):
        gateway = MagicMock(spec=StoreGateway)
        gateway.get_record.return_value = None
        gateway.put_record.side_effect = StoreOperationError("bad request", status_code=400)
        backend = TaggedExpiringCacheBackend(gateway, bucket_name=BUCKET, clock=clock)

        with pytest.raises(StoreOperationError):
            backend.set("Foo", b"Bar")


class TestMetricsAndHealth:
    """Test metrics recording and health reporting."""

    def test_lookup_results_are_counted(self, backend, metrics, clock):
        backend.set("Foo", b"Bar", lifetime=1)
        backend.get("Foo")
        backend.get("Missing")
        clock.advance(2)
        backend.has("Foo")

        def lookups(result):
            return metrics.sample(
                "tagged_cache_lookups_total", {"bucket": BUCKET, "result": result}
            )

        assert lookups("hit") == 1
        assert lookups("miss") == 1
        assert lookups("expired") == 1

    def test_writes_are_counted_by_mode(self, backend, metrics):
        backend.set("Foo", b"1")
        backend.set("Foo", b"2")

        created = {"bucket": BUCKET, "mode": "created"}
        replaced = {"bucket": BUCKET, "mode": "replaced"}
        assert metrics.sample("tagged_cache_writes_total", created) == 1
        assert metrics.sample("tagged_cache_writes_total", replaced) == 1

    def test_operation_durations_are_observed(self, backend, metrics):
        backend.set("Foo", b"1")
        backend.flush()

        labels = {"bucket": BUCKET, "operation": "flush"}
        assert metrics.sample("tagged_cache_operation_duration_seconds_count", labels) == 1
        assert b"tagged_cache_writes_total" in metrics.export()

    def test_health_check(self, backend):
        status = backend.health_check()

        assert status == {
            "status": "healthy",
            "bucket": BUCKET,
            "store_reachable": True,
            "gateway": "InMemoryStoreGateway",
        }

    def test_health_check_unreachable_store(self, clock):
        gateway = MagicMock(spec=StoreGateway)
        gateway.ping.return_value = False
        backend = TaggedExpiringCacheBackend(gateway, bucket_name=BUCKET, clock=clock)

        assert backend.health_check()["status"] == "unhealthy"

    def test_close_closes_gateway(self, clock):
        gateway = MagicMock(spec=StoreGateway)
        backend = TaggedExpiringCacheBackend(gateway, bucket_name=BUCKET, clock=clock)

        backend.close()

        gateway.close.assert_called_once_with()
