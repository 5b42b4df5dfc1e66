"""
On-demand ZIP bundles of every file in an item.
"""
import logging
import shutil
import zipfile
from pathlib import Path

from quickdrop.file_store import FileStore
from quickdrop.item_store import Item

logger = logging.getLogger(__name__)

BUNDLE_FILENAME = "all_files.zip"

# Archives older than this belong to downloads that never finished
STALE_BUNDLE_SECONDS = 60 * 60


def build_archive(code: str, item: Item, files: FileStore) -> Path:
    """
    Write a ZIP with one entry per file, named by its display name.

    The archive gets a unique name per call so two downloads of the same
    code never share a path. If any file cannot be read the whole bundle
    fails: the partial archive is deleted and the error propagates. The
    caller owns the returned path and must discard it after sending.

    Raises:
        NotFound: If a file of the item has already been removed
        ReadError: If a file exists but cannot be read
    """
    path = files.bundle_path(code)
    try:
        with zipfile.ZipFile(path, mode="w", compression=zipfile.ZIP_DEFLATED) as zf:
            for record in item.files:
                with files.open_for_read(record) as src, zf.open(record.display_name, "w") as dest:
                    shutil.copyfileobj(src, dest)
    except BaseException:
        files.discard_path(path)
        logger.warning(f"Bundle for {code} aborted")
        raise
    return path
