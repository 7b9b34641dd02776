"""
Cache management for the processed-files list.

The list is a UTF-8 text file with one key per line. Keys compare
case-insensitively and are written sorted so the file diffs cleanly.
"""

import os
import shutil
import threading
from typing import Dict, Iterable, Iterator, List

from .config import BACKUP_SUFFIX, TEMP_SUFFIX
from .logger import logger


def _fold(key: str) -> str:
    return key.casefold()


class ProcessedSet:
    """Thread-safe, case-insensitive set of processed keys."""

    def __init__(self, keys: Iterable[str] = ()):
        self._lock = threading.Lock()
        self._entries: Dict[str, str] = {}
        for key in keys:
            self._entries.setdefault(_fold(key), key)

    def add(self, key: str) -> bool:
        """Add key; returns True if it was not present before."""
        folded = _fold(key)
        with self._lock:
            if folded in self._entries:
                return False
            self._entries[folded] = key
            return True

    def __contains__(self, key) -> bool:
        with self._lock:
            return _fold(key) in self._entries

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def __iter__(self) -> Iterator[str]:
        return iter(self.snapshot())

    def snapshot(self) -> List[str]:
        """Entries sorted case-insensitively."""
        with self._lock:
            return [self._entries[folded] for folded in sorted(self._entries)]


def _read_keys(path):
    with open(path, "r", encoding="utf-8") as f:
        return [line.strip() for line in f if line.strip()]


def read_processed_files(path) -> ProcessedSet:
    """
    Read the processed list without creating, restoring or rewriting anything.

    Falls back to the backup of an interrupted save when the list itself is
    missing or unreadable; returns an empty set when neither can be read.
    """
    for candidate in (path, path + BACKUP_SUFFIX):
        if not os.path.exists(candidate):
            continue
        try:
            return ProcessedSet(_read_keys(candidate))
        except (OSError, UnicodeDecodeError) as e:
            logger.warning(f"Could not read {candidate}: {e}")
    return ProcessedSet()


def load_processed_files(path) -> ProcessedSet:
    """
    Load the processed list, creating an empty file if it does not exist.

    If the list cannot be read but a backup from an interrupted save is
    present, the backup is used instead.
    """
    backup_path = path + BACKUP_SUFFIX

    if not os.path.exists(path):
        if os.path.exists(backup_path):
            logger.warning(f"Processed files list missing, restoring from backup: {backup_path}")
            try:
                os.replace(backup_path, path)
            except OSError as e:
                logger.error(f"Could not restore processed files backup: {e}")
        else:
            logger.info(f"Processed files list not found, creating: {path}")
            try:
                parent = os.path.dirname(os.path.abspath(path))
                os.makedirs(parent, exist_ok=True)
                with open(path, "w", encoding="utf-8"):
                    pass
            except OSError as e:
                logger.error(f"Error creating processed files list {path}: {e}")
            return ProcessedSet()

    try:
        keys = _read_keys(path)
    except (OSError, UnicodeDecodeError) as e:
        logger.error(f"Error loading processed files from {path}: {e}")
        if not os.path.exists(backup_path):
            return ProcessedSet()
        try:
            keys = _read_keys(backup_path)
            logger.warning(f"Loaded processed files from backup: {backup_path}")
        except (OSError, UnicodeDecodeError) as backup_error:
            logger.error(f"Error loading processed files backup {backup_path}: {backup_error}")
            return ProcessedSet()

    processed = ProcessedSet(keys)
    logger.debug(f"Loaded {len(processed)} processed file entries from {path}")
    return processed


def save_processed_files(path, processed: ProcessedSet) -> bool:
    """
    Atomically write the processed list.

    The new content goes to a temporary sibling first; the current file is
    copied to a backup before the temporary file replaces it, and restored
    from that backup if the replace fails. Returns True on success.
    """
    temp_path = path + TEMP_SUFFIX
    backup_path = path + BACKUP_SUFFIX
    entries = processed.snapshot()

    try:
        parent = os.path.dirname(os.path.abspath(path))
        os.makedirs(parent, exist_ok=True)
        with open(temp_path, "w", encoding="utf-8", newline="\n") as f:
            for key in entries:
                f.write(f"{key}\n")
            f.flush()
            os.fsync(f.fileno())
    except OSError as e:
        logger.error(f"Error writing processed files list {temp_path}: {e}")
        _discard(temp_path)
        return False

    has_backup = False
    if os.path.exists(path):
        try:
            shutil.copy2(path, backup_path)
            has_backup = True
        except OSError as e:
            logger.warning(f"Could not back up processed files list: {e}")

    try:
        os.replace(temp_path, path)
    except OSError as e:
        logger.error(f"Error saving processed files list {path}: {e}")
        _discard(temp_path)
        if has_backup:
            _restore_backup(backup_path, path)
        return False

    if has_backup:
        _discard(backup_path)
    logger.debug(f"Saved {len(entries)} processed file entries to {path}")
    return True


def _restore_backup(backup_path, path):
    try:
        os.replace(backup_path, path)
        logger.warning(f"Restored processed files list from backup: {backup_path}")
    except OSError as e:
        logger.error(f"Could not restore processed files list from backup: {e}")


def _discard(path):
    try:
        os.remove(path)
    except FileNotFoundError:
        pass
    except OSError as e:
        logger.warning(f"Could not remove {path}: {e}")
