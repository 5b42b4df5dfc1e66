"""
QuickDrop - Test Configuration and Fixtures
"""
import io
import os
import tempfile
from datetime import datetime, timedelta, timezone

import pytest

# Keep the module-level app away from the package directory
os.environ.setdefault('QUICKDROP_STORAGE_DIR', tempfile.mkdtemp(prefix='quickdrop-test-'))

from quickdrop.file_store import FileStore
from quickdrop.item_store import ItemStore
from quickdrop.share_service import DropService

T0 = datetime(2024, 1, 1, 12, 0, 0, tzinfo=timezone.utc)


class FakeClock:
    """Manually advanced clock"""

    def __init__(self, start: datetime = T0):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs):
        self.now += timedelta(**kwargs)


class BrokenStream:
    """Stream that yields some bytes and then fails like a dropped upload"""

    def __init__(self, head: bytes = b'partial'):
        self._head = head
        self._sent = False

    def read(self, size=-1):
        if not self._sent:
            self._sent = True
            return self._head
        raise OSError('connection reset')


class ClosedStream:
    """Upload stream whose spooled file was closed before it was read"""

    def read(self, size=-1):
        raise ValueError('I/O operation on closed file.')


def stream(data: bytes) -> io.BytesIO:
    return io.BytesIO(data)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def storage(tmp_path):
    return tmp_path / 'storage'


@pytest.fixture
def files(storage) -> FileStore:
    return FileStore(storage)


@pytest.fixture
def store(clock) -> ItemStore:
    return ItemStore(clock=clock)


@pytest.fixture
def service(store, files) -> DropService:
    return DropService(store, files, ttl=timedelta(minutes=5))
