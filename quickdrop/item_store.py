"""
Item Store - in-memory registry mapping pickup codes to uploaded items.
All access goes through one exclusive lock so request threads and the
reaper can share it safely.
"""
import threading
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Callable, Dict, List, Optional, Set, Tuple

from quickdrop.errors import NotFound
from quickdrop.file_store import FileRecord
from quickdrop.utils.code_generator import ensure_unique_code


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class Item:
    """One submission: optional text plus its files, with an absolute expiry."""
    expires_at: datetime
    text: str = ""
    files: Tuple[FileRecord, ...] = field(default_factory=tuple)

    @classmethod
    def create(cls, text: str, files, ttl: timedelta, now: datetime) -> "Item":
        return cls(expires_at=now + ttl, text=text or "", files=tuple(files))

    def is_expired(self, now: datetime) -> bool:
        return now >= self.expires_at

    def find_file(self, display_name: str) -> Optional[FileRecord]:
        for record in self.files:
            if record.display_name == display_name:
                return record
        return None

    @property
    def display_names(self) -> List[str]:
        return [record.display_name for record in self.files]


class ItemStore:
    """
    Registry of live items keyed by pickup code.

    The store never touches files: operations that take an item out of the
    map hand it back so the caller can reclaim its files outside the lock.
    """

    def __init__(self, clock: Callable[[], datetime] = utcnow):
        self.clock = clock
        self._items: Dict[str, Item] = {}
        self._reserved: Set[str] = set()
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._items)

    def _is_live(self, code: str, now: datetime) -> bool:
        item = self._items.get(code)
        return item is not None and not item.is_expired(now)

    def reserve(self) -> Tuple[str, Optional[Item]]:
        """
        Claim a fresh code for a submission that is about to write files.

        Returns the code and, if the code still held an expired item the
        reaper had not collected yet, that item. Its files live under the
        same code and must be removed before anything new is written.
        """
        with self._lock:
            now = self.clock()
            code = ensure_unique_code(
                lambda c: c in self._reserved or self._is_live(c, now)
            )
            self._reserved.add(code)
            displaced = self._items.pop(code, None)
        return code, displaced

    def release(self, code: str) -> None:
        """Drop a reservation that will not be filled."""
        with self._lock:
            self._reserved.discard(code)

    def put(self, code: str, item: Item) -> Optional[Item]:
        """Install ``item`` under ``code`` and return whatever it replaced."""
        with self._lock:
            self._reserved.discard(code)
            previous = self._items.get(code)
            self._items[code] = item
        return previous

    def get(self, code: str) -> Item:
        """
        Return the live item for ``code``.

        Raises:
            NotFound: If the code is unknown, reserved, or expired
        """
        with self._lock:
            item = self._items.get(code)
            now = self.clock()
        if item is None or item.is_expired(now):
            raise NotFound("Invalid or expired code")
        return item

    def delete(self, code: str) -> Optional[Item]:
        with self._lock:
            return self._items.pop(code, None)

    def snapshot(self) -> List[Tuple[str, Item]]:
        """Point-in-time copy of every registered entry."""
        with self._lock:
            return list(self._items.items())

    def discard_if_expired(self, code: str) -> Optional[Item]:
        """
        Remove the entry for ``code`` only if it is expired right now.

        Once this returns an item no reader can observe it as live again.
        """
        with self._lock:
            item = self._items.get(code)
            if item is None or not item.is_expired(self.clock()):
                return None
            del self._items[code]
            return item
