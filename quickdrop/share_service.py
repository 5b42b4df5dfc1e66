"""
Submission and retrieval operations on top of the item store, the file
store, and the bundle builder.
"""
import logging
from dataclasses import dataclass, field
from datetime import timedelta
from pathlib import Path
from typing import BinaryIO, Iterable, List, Optional, Tuple

from quickdrop.bundle import build_archive
from quickdrop.errors import NotFound, ReadError, WriteError
from quickdrop.file_store import FileRecord, FileStore
from quickdrop.item_store import Item, ItemStore
from quickdrop.security import fit_filename

logger = logging.getLogger(__name__)

DEFAULT_TTL = timedelta(minutes=5)


@dataclass
class SubmitResult:
    code: str
    item: Item
    skipped: List[str] = field(default_factory=list)


def dedupe_name(name: str, taken: set) -> str:
    """
    Return ``name`` or ``name (n).ext`` so display names stay unique, kept
    within the byte bound storage names need.
    """
    name = fit_filename(name)
    candidate = name
    n = 0
    while candidate in taken:
        n += 1
        candidate = fit_filename(name, f" ({n})")
    return candidate


class DropService:
    """
    The operations the HTTP layer calls.

    submit reserves a code first, writes every file, and only then
    registers the finished item, so a reader never sees a half-built item.
    """

    def __init__(self, store: ItemStore, files: FileStore, ttl: timedelta = DEFAULT_TTL):
        self.store = store
        self.files = files
        self.ttl = ttl

    def _reclaim(self, item: Optional[Item]):
        if item is None:
            return
        for record in item.files:
            self.files.remove(record)

    def submit(self, text: Optional[str], uploads: Iterable[Tuple[str, BinaryIO]]) -> SubmitResult:
        """
        Store a submission and register it under a new code.

        A file that fails to write is skipped and reported in
        ``SubmitResult.skipped``; the rest of the submission proceeds.

        Raises:
            WriteError: If every file failed and there is no text, so
                nothing would be left to pick up
        """
        code, displaced = self.store.reserve()
        self._reclaim(displaced)

        records: List[FileRecord] = []
        skipped: List[str] = []
        taken = set()
        try:
            for display_name, stream in uploads:
                display_name = dedupe_name(display_name, taken)
                try:
                    record = self.files.persist(code, display_name, stream)
                except WriteError as e:
                    logger.warning(f"Skipping {display_name!r} for code {code}: {e}")
                    skipped.append(display_name)
                    continue
                taken.add(display_name)
                records.append(record)
        except BaseException:
            for record in records:
                self.files.remove(record)
            self.store.release(code)
            raise

        if skipped and not records and not text:
            self.store.release(code)
            raise WriteError("None of the uploaded files could be stored")

        item = Item.create(text, records, self.ttl, self.store.clock())
        self._reclaim(self.store.put(code, item))

        logger.info(
            f"{code} uploaded files: {item.display_names} text: {len(item.text)} chars"
            + (f" skipped: {skipped}" if skipped else "")
        )
        return SubmitResult(code=code, item=item, skipped=skipped)

    def fetch_item(self, code: str) -> Item:
        return self.store.get(code)

    def fetch_file(self, code: str, display_name: str) -> Tuple[FileRecord, BinaryIO]:
        """
        Open one file of a live item.

        Raises:
            NotFound: If the item is gone or expired, it has no such file,
                or the file could not be read
        """
        item = self.store.get(code)
        record = item.find_file(display_name)
        if record is None:
            raise NotFound("File not found")
        try:
            return record, self.files.open_for_read(record)
        except ReadError as e:
            logger.warning(f"Read failed for {code}/{display_name}: {e}")
            raise NotFound("File not found") from e

    def fetch_bundle(self, code: str) -> Path:
        """
        Build a transient archive of every file in a live item.

        The caller must discard the returned path once it has been sent.
        """
        item = self.store.get(code)
        try:
            return build_archive(code, item, self.files)
        except ReadError as e:
            logger.warning(f"Bundle read failed for {code}: {e}")
            raise NotFound("File not found") from e
