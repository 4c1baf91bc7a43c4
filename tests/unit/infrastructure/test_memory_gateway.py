"""
Unit tests for the in-memory store gateway.
"""

from tagged_cache.domain.cache.value_objects import IndexEntry


class TestInMemoryStoreGateway:
    """Test the dictionary backed gateway contract."""

    def test_put_and_get(self, gateway):
        gateway.put_record("b", "Foo", b"Bar", [IndexEntry("cache_int", 1)])

        record = gateway.get_record("b", "Foo")
        assert record.payload == b"Bar"
        assert record.indexes == frozenset({IndexEntry("cache_int", 1)})
        assert record.revision is not None

    def test_put_replaces_indexes(self, gateway):
        gateway.put_record("b", "Foo", b"1", [IndexEntry("tag_bin", "A")])
        gateway.put_record("b", "Foo", b"2", [IndexEntry("tag_bin", "B")])

        assert gateway.query_index_exact("b", "tag_bin", "A") == []
        assert gateway.query_index_exact("b", "tag_bin", "B") == ["Foo"]

    def test_revision_changes_on_write(self, gateway):
        gateway.put_record("b", "Foo", b"1", [])
        first = gateway.get_record("b", "Foo").revision
        gateway.put_record("b", "Foo", b"2", [], revision=first)

        assert gateway.get_record("b", "Foo").revision != first

    def test_delete_is_idempotent(self, gateway):
        gateway.put_record("b", "Foo", b"1", [])

        gateway.delete_record("b", "Foo")
        gateway.delete_record("b", "Foo")
        gateway.delete_record("unknown", "Foo")

        assert gateway.get_record("b", "Foo") is None

    def test_range_query_is_inclusive(self, gateway):
        for key, expires_at in (("a", 9), ("b", 10), ("c", 20), ("d", 21)):
            gateway.put_record("b", key, b"", [IndexEntry("expiration_int", expires_at)])
        gateway.put_record("b", "e", b"", [IndexEntry("cache_int", 1)])

        assert sorted(gateway.query_index_range("b", "expiration_int", 10, 20)) == ["b", "c"]

    def test_buckets_are_isolated(self, gateway):
        gateway.put_record("one", "Foo", b"1", [IndexEntry("cache_int", 1)])

        assert gateway.get_record("two", "Foo") is None
        assert gateway.query_index_exact("two", "cache_int", 1) == []
        assert gateway.keys("one") == ["Foo"]

    def test_ping_and_close(self, gateway):
        assert gateway.ping() is True
        gateway.close()
