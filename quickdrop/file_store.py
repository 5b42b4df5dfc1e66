"""
Disk lifecycle of uploaded files: persist, open, and reclaim.
"""
import logging
import shutil
import time
import uuid
from dataclasses import dataclass
from pathlib import Path
from typing import BinaryIO, Iterator

from quickdrop.errors import NotFound, ReadError, WriteError
from quickdrop.security import validate_path_traversal

logger = logging.getLogger(__name__)

CHUNK_SIZE = 64 * 1024


@dataclass(frozen=True)
class FileRecord:
    """One persisted upload. The record exclusively owns ``path``."""
    path: Path
    display_name: str


class FileStore:
    """
    Writes upload streams under a single storage directory and removes them
    again when their item is reclaimed.

    Files are stored as ``tmp_<code>_<display_name>`` so uploads belonging to
    different codes never collide.
    """

    def __init__(self, root: Path):
        self.root = Path(root)
        self.root.mkdir(parents=True, exist_ok=True)
        # Upload names never contain "/", so nothing stored under a code lands here
        self.bundle_dir = self.root / "bundles"
        self.bundle_dir.mkdir(exist_ok=True)

    def bundle_path(self, code: str) -> Path:
        """A fresh transient archive location, unique per call."""
        return self.bundle_dir / f"{code}_{uuid.uuid4().hex}.zip"

    def discard_stale_bundles(self, max_age_seconds: float) -> int:
        """
        Remove archives left behind by downloads that never completed
        (e.g. the client disconnected before the response finished).
        """
        cutoff = time.time() - max_age_seconds
        removed = 0
        for path in self.bundle_dir.glob("*.zip"):
            try:
                if path.stat().st_mtime >= cutoff:
                    continue
            except FileNotFoundError:
                continue
            self.discard_path(path)
            removed += 1
        return removed

    def location_for(self, code: str, display_name: str) -> Path:
        try:
            return validate_path_traversal(self.root, f"tmp_{code}_{display_name}")
        except ValueError as e:
            raise WriteError(f"Invalid storage name for {display_name!r}") from e

    def persist(self, code: str, display_name: str, stream: BinaryIO) -> FileRecord:
        """
        Copy ``stream`` to disk and return the record that owns it.

        Raises:
            WriteError: If the file cannot be created or fully written. A
                partially written file is removed before raising.
        """
        path = self.location_for(code, display_name)
        try:
            with open(path, "wb") as out:
                shutil.copyfileobj(stream, out, CHUNK_SIZE)
        except OSError as e:
            self.discard_path(path)
            raise WriteError(f"Could not store {display_name!r}: {e}") from e
        except BaseException:
            # e.g. ValueError from an upload stream that was already closed
            self.discard_path(path)
            raise
        return FileRecord(path=path, display_name=display_name)

    def remove(self, record: FileRecord) -> None:
        """Delete the backing file. Already-missing files count as removed."""
        self.discard_path(record.path)

    def discard_path(self, path: Path) -> None:
        try:
            Path(path).unlink()
        except FileNotFoundError:
            logger.debug(f"Already removed: {path}")
        except OSError as e:
            logger.warning(f"Could not remove {path}: {e}")

    def open_for_read(self, record: FileRecord) -> BinaryIO:
        """
        Open the backing file for reading.

        Raises:
            NotFound: If the file is gone (e.g. reclaimed concurrently)
            ReadError: For any other storage failure
        """
        try:
            return open(record.path, "rb")
        except FileNotFoundError as e:
            raise NotFound(f"File not found: {record.display_name}") from e
        except OSError as e:
            raise ReadError(f"Could not read {record.display_name!r}") from e


def iter_file(fh: BinaryIO, chunk_size: int = CHUNK_SIZE) -> Iterator[bytes]:
    """Yield the contents of an open file in chunks, closing it afterwards."""
    try:
        while True:
            chunk = fh.read(chunk_size)
            if not chunk:
                break
            yield chunk
    finally:
        fh.close()
