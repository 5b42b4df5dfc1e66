"""
Unit Tests for the item registry
Tests for: liveness, reservations, collision handling, eviction commit
"""
import threading
from datetime import timedelta
from unittest.mock import patch

import pytest

from conftest import stream
from quickdrop.errors import NotFound
from quickdrop.file_store import FileRecord
from quickdrop.item_store import Item

TTL = timedelta(minutes=5)


def make_item(clock, text='hello', files=()):
    return Item.create(text, files, TTL, clock())


class TestItem:
    """Test item expiry and lookup helpers"""

    def test_expiry_is_half_open(self, clock):
        item = make_item(clock)
        assert not item.is_expired(clock.now)
        assert not item.is_expired(clock.now + TTL - timedelta(microseconds=1))
        assert item.is_expired(clock.now + TTL)

    def test_missing_text_becomes_empty(self, clock):
        assert Item.create(None, [], TTL, clock()).text == ''

    def test_find_file(self, clock, tmp_path):
        record = FileRecord(path=tmp_path / 'tmp_1_a.txt', display_name='a.txt')
        item = make_item(clock, files=[record])
        assert item.find_file('a.txt') is record
        assert item.find_file('b.txt') is None
        assert item.display_names == ['a.txt']


class TestGet:
    """Test reads only ever see live items"""

    def test_unknown_code(self, store):
        with pytest.raises(NotFound):
            store.get('000000')

    def test_live_item_returned(self, store, clock):
        item = make_item(clock)
        store.put('123456', item)
        assert store.get('123456') is item

    def test_expired_item_not_found_before_reaping(self, store, clock):
        store.put('123456', make_item(clock))
        clock.advance(minutes=5)
        with pytest.raises(NotFound):
            store.get('123456')
        # Still registered until the reaper collects it
        assert len(store) == 1


class TestPutDelete:
    """Test installing and removing entries"""

    def test_put_returns_displaced_item(self, store, clock):
        old = make_item(clock, text='old')
        new = make_item(clock, text='new')
        assert store.put('123456', old) is None
        assert store.put('123456', new) is old
        assert store.get('123456') is new

    def test_delete_returns_item(self, store, clock, files):
        record = files.persist('123456', 'a.txt', stream(b'x'))
        item = make_item(clock, files=[record])
        store.put('123456', item)
        assert store.delete('123456') is item
        assert store.delete('123456') is None
        # Files belong to the caller
        assert record.path.exists()

    def test_snapshot_is_a_copy(self, store, clock):
        store.put('000001', make_item(clock))
        snap = store.snapshot()
        store.put('000002', make_item(clock))
        assert [code for code, _ in snap] == ['000001']


class TestReserve:
    """Test code reservation for in-flight uploads"""

    def test_reserved_code_is_invisible(self, store):
        code, displaced = store.reserve()
        assert displaced is None
        with pytest.raises(NotFound):
            store.get(code)
        assert store.snapshot() == []

    def test_reserved_code_not_reissued(self, store):
        with patch('quickdrop.utils.code_generator.generate_code', side_effect=['111111', '111111', '222222']):
            first, _ = store.reserve()
            second, _ = store.reserve()
        assert (first, second) == ('111111', '222222')

    def test_live_code_not_reissued(self, store, clock):
        store.put('111111', make_item(clock))
        with patch('quickdrop.utils.code_generator.generate_code', side_effect=['111111', '222222']):
            code, displaced = store.reserve()
        assert code == '222222'
        assert displaced is None

    def test_dead_code_reused_and_handed_back(self, store, clock):
        dead = make_item(clock)
        store.put('111111', dead)
        clock.advance(minutes=6)
        with patch('quickdrop.utils.code_generator.generate_code', return_value='111111'):
            code, displaced = store.reserve()
        assert code == '111111'
        assert displaced is dead
        assert store.snapshot() == []

    def test_release_frees_code(self, store):
        with patch('quickdrop.utils.code_generator.generate_code', side_effect=['111111', '111111']):
            code, _ = store.reserve()
            store.release(code)
            again, _ = store.reserve()
        assert again == '111111'

    def test_put_clears_reservation(self, store, clock):
        code, _ = store.reserve()
        store.put(code, make_item(clock))
        clock.advance(minutes=6)
        with patch('quickdrop.utils.code_generator.generate_code', return_value=code):
            again, displaced = store.reserve()
        assert again == code
        assert displaced is not None

    def test_concurrent_reservations_are_distinct(self, store):
        codes = []
        lock = threading.Lock()

        def worker():
            for _ in range(20):
                code, _ = store.reserve()
                with lock:
                    codes.append(code)

        threads = [threading.Thread(target=worker) for _ in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        assert len(codes) == 160
        assert len(set(codes)) == 160


class TestDiscardIfExpired:
    """Test the reaper's eviction commit"""

    def test_live_entry_kept(self, store, clock):
        store.put('123456', make_item(clock))
        assert store.discard_if_expired('123456') is None
        assert store.get('123456')

    def test_expired_entry_removed(self, store, clock):
        item = make_item(clock)
        store.put('123456', item)
        clock.advance(minutes=5)
        assert store.discard_if_expired('123456') is item
        assert len(store) == 0

    def test_unknown_code(self, store):
        assert store.discard_if_expired('000000') is None
