"""
File utilities for path keys, liveness checks and artifact permissions.
"""

import os
import stat
import time

from .logger import logger

if os.name == "nt":
    fcntl = None
else:
    import fcntl

_SEPARATORS = "/\\"

# rwx for owner, group and others; the mirror is served by a web server
PUBLIC_PERMISSIONS = stat.S_IRWXU | stat.S_IRWXG | stat.S_IRWXO


def normalize_path(path):
    """Convert both separator styles to the host platform convention."""
    if os.sep == "\\":
        return path.replace("/", "\\")
    return path.replace("\\", "/")


def _trim_trailing_separators(path):
    trimmed = path.rstrip(_SEPARATORS)
    # Keep filesystem roots such as "/" or "C:\" intact
    if not trimmed or trimmed.endswith(":"):
        return path
    return trimmed


def relative_of(full_path, base_path):
    """
    Return full_path relative to base_path.

    The prefix is compared case-insensitively and must end on a separator
    boundary. When it does not match (symlinks, 8.3 names, different
    casing normalisation) the symlink-resolved forms are compared instead.
    If the path still falls outside base_path it is returned unchanged.
    """
    full = _trim_trailing_separators(os.path.abspath(full_path))
    base = _trim_trailing_separators(os.path.abspath(base_path))

    if full.lower().startswith(base.lower()):
        remainder = full[len(base):]
        if not remainder or remainder[0] in _SEPARATORS or base[-1] in _SEPARATORS:
            return remainder.lstrip(_SEPARATORS)

    try:
        resolved = os.path.relpath(os.path.realpath(full_path), os.path.realpath(base_path))
    except ValueError:
        # Different drives on Windows
        return full_path

    if resolved == os.curdir:
        return ""
    if not is_contained_relative_path(resolved):
        return full_path
    return resolved


def is_contained_relative_path(relative_path):
    """True if relative_path is non-empty, relative and does not climb out with '..'."""
    if not relative_path or os.path.isabs(relative_path):
        return False
    first = normalize_path(relative_path).split(os.sep, 1)[0]
    return first != os.pardir


def make_processed_key(server_name, relative_path):
    """Build the processed-list key for a file of one server."""
    return f"{server_name}:{normalize_path(relative_path)}"


def compressed_destination(dest_root, relative_path, suffix):
    """Path of the compressed artifact mirroring relative_path under dest_root."""
    return os.path.join(dest_root, normalize_path(relative_path) + suffix)


def is_file_in_use(file_path):
    """
    Check whether another process holds the file exclusively.

    On POSIX this tries an exclusive flock, so it only sees writers that
    take an flock themselves. A game server writing a file without locking is
    not detected here; is_file_growing is what skips such files. On Windows it
    relies on the sharing violation raised when another process opened the
    file without read sharing. A file that disappeared counts as in use.
    """
    try:
        with open(file_path, "rb") as f:
            if fcntl is None:
                return False
            try:
                fcntl.flock(f.fileno(), fcntl.LOCK_EX | fcntl.LOCK_NB)
            except BlockingIOError:
                logger.debug(f"File in use: {file_path}")
                return True
            except OSError as e:
                # Filesystems without flock support (some network shares)
                logger.debug(f"Could not test lock on {file_path}: {e}")
                return False
            fcntl.flock(f.fileno(), fcntl.LOCK_UN)
            return False
    except OSError as e:
        logger.debug(f"File in use: {file_path} ({e})")
        return True


def is_file_growing(file_path, interval):
    """Sample the file size twice, interval seconds apart."""
    try:
        size_before = os.path.getsize(file_path)
        if interval > 0:
            time.sleep(interval)
        size_after = os.path.getsize(file_path)
    except OSError:
        return True

    if size_before != size_after:
        logger.debug(f"File is growing: {file_path} ({size_before} -> {size_after} bytes)")
        return True
    return False


def set_public_permissions(file_path):
    """Make a produced artifact world readable/writable/executable on POSIX hosts."""
    if os.name != "posix":
        return True
    try:
        os.chmod(file_path, PUBLIC_PERMISSIONS)
        return True
    except OSError as e:
        logger.warning(f"Could not set permissions on {file_path}: {e}")
        return False
