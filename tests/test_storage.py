"""Conformance suite shared by every history backend, plus log-specific behavior."""

import pytest

from chatterm.errors import PageTokenError, StorageError
from chatterm.storage import Entry, JSONCodec, LogBackend, MemoryBackend
from chatterm.storage.logfile import LOG_NAME


@pytest.fixture(params=["memory", "log"])
def backend(request, tmp_path):
    if request.param == "memory":
        b = MemoryBackend()
    else:
        b = LogBackend(tmp_path / "store")
    yield b
    b.close()


class TestBackendConformance:
    """Every backend must behave identically."""

    def test_get_missing(self, backend):
        assert backend.get("nope") == (None, False)

    def test_set_then_get(self, backend):
        backend.set("hello", {"v": "world"})
        assert backend.get("hello") == ({"v": "world"}, True)

    def test_list_newest_first(self, backend):
        backend.set("hello", "world")
        backend.set("hello again", "world2")
        page = backend.list()
        assert [e.key for e in page] == ["hello again", "hello"]
        assert page.next_token is None

    def test_paging_with_token(self, backend):
        backend.set("hello", "world")
        backend.set("hello again", "world2")

        first = backend.list(1)
        assert first.entries == [Entry("hello again", "world2")]
        assert first.next_token == "hello again"

        rest = backend.list(None, first.next_token)
        assert rest.entries == [Entry("hello", "world")]
        assert rest.next_token is None

    def test_pages_reconstruct_every_entry_once(self, backend):
        keys = [f"k{i:02d}" for i in range(7)]
        for k in keys:
            backend.set(k, {"n": k})

        seen = []
        token = None
        while True:
            page = backend.list(3, token)
            seen.extend(e.key for e in page)
            if page.next_token is None:
                break
            token = page.next_token
        assert seen == list(reversed(keys))

    def test_iter_all(self, backend):
        for i in range(30):
            backend.set(f"{i:03d}", i)
        assert [e.value for e in backend.iter_all(page_size=7)] == list(range(29, -1, -1))

    def test_overwrite_keeps_position(self, backend):
        backend.set("a", 1)
        backend.set("b", 2)
        backend.set("a", 3)
        assert [(e.key, e.value) for e in backend.list()] == [("b", 2), ("a", 3)]

    def test_delete(self, backend):
        backend.set("a", 1)
        backend.set("b", 2)
        backend.delete("a")
        backend.delete("missing")
        assert backend.get("a") == (None, False)
        assert [e.key for e in backend.list()] == ["b"]

    def test_unknown_token(self, backend):
        backend.set("a", 1)
        with pytest.raises(PageTokenError):
            backend.list(1, "gone")

    def test_empty_list(self, backend):
        page = backend.list(5)
        assert len(page) == 0
        assert page.next_token is None

    def test_exact_page_has_no_token(self, backend):
        backend.set("a", 1)
        backend.set("b", 2)
        assert backend.list(2).next_token is None

    def test_bad_page_size(self, backend):
        with pytest.raises(ValueError):
            backend.list(0)

    def test_closed_backend_rejects_operations(self, backend):
        backend.close()
        with pytest.raises(StorageError):
            backend.get("a")
        # Closing twice is harmless
        backend.close()

    def test_unencodable_value(self, backend):
        with pytest.raises(StorageError):
            backend.set("a", {"bad": object()})


class TestJSONCodec:
    def test_roundtrip_unicode(self):
        codec = JSONCodec()
        assert codec.decode_value(codec.encode_value({"t": "héllo ‣"})) == {"t": "héllo ‣"}
        assert codec.decode_key(codec.encode_key("ключ")) == "ключ"

    def test_non_string_key(self):
        with pytest.raises(StorageError):
            JSONCodec().encode_key(42)

    def test_garbage_value(self):
        with pytest.raises(StorageError):
            JSONCodec().decode_value(b"\xff{")


class TestLogBackend:
    """Durability of the on-disk log."""

    def test_reopen_restores_order_and_values(self, tmp_path):
        path = tmp_path / "store"
        with LogBackend(path) as b:
            b.set("one", {"n": 1})
            b.set("two", {"n": 2})
            b.set("one", {"n": 11})
            b.delete("two")
            b.set("three", {"n": 3})

        with LogBackend(path) as b:
            assert [(e.key, e.value) for e in b.list()] == [("three", {"n": 3}), ("one", {"n": 11})]

    def test_torn_tail_is_truncated(self, tmp_path):
        path = tmp_path / "store"
        with LogBackend(path) as b:
            b.set("a", "first")
            b.set("b", "second")
        log = path / LOG_NAME
        data = log.read_bytes()
        log.write_bytes(data[:-3])

        with LogBackend(path) as b:
            assert [e.key for e in b.list()] == ["a"]
            b.set("c", "third")
        with LogBackend(path) as b:
            assert [e.key for e in b.list()] == ["c", "a"]

    def test_corrupt_record_stops_replay(self, tmp_path):
        path = tmp_path / "store"
        with LogBackend(path) as b:
            b.set("a", "first")
            b.set("b", "second")
        log = path / LOG_NAME
        data = bytearray(log.read_bytes())
        data[-6] ^= 0xFF
        log.write_bytes(bytes(data))

        with LogBackend(path) as b:
            assert b.get("b") == (None, False)
            assert b.get("a") == ("first", True)

    def test_compaction_drops_dead_records(self, tmp_path):
        path = tmp_path / "store"
        with LogBackend(path, compact_min_dead=4) as b:
            for i in range(10):
                b.set("hot", i)
            b.set("cold", "x")
            b.flush()
            assert b.dead_records == 0

        log = path / LOG_NAME
        size_after = log.stat().st_size
        with LogBackend(path) as b:
            assert [(e.key, e.value) for e in b.list()] == [("cold", "x"), ("hot", 9)]
        assert size_after < 10 * 20

    def test_unwritable_path(self, tmp_path):
        blocker = tmp_path / "file"
        blocker.write_text("not a dir")
        with pytest.raises(StorageError):
            LogBackend(blocker / "store")
