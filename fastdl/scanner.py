"""
Source tree scanning for FastDL content files.
"""

import os

from .logger import logger


def matches_extension(file_name, extensions):
    """Case-insensitive suffix match, so compound types like '.dx90.vtx' work too."""
    lowered = file_name.lower()
    return any(lowered.endswith(ext) for ext in extensions)


def walk_tree(root, onerror=None):
    """
    os.walk that follows directory symlinks, such as shared maps/ or custom/
    trees linked into a server, and visits each real directory only once.
    """
    visited = set()
    for dir_path, dir_names, file_names in os.walk(root, onerror=onerror, followlinks=True):
        try:
            st = os.stat(dir_path)
        except OSError as e:
            if onerror is not None:
                onerror(e)
            dir_names[:] = []
            continue

        identity = (st.st_dev, st.st_ino)
        if identity in visited:
            logger.debug(f"Skipping directory visited through another path: {dir_path}")
            dir_names[:] = []
            continue
        visited.add(identity)

        dir_names.sort()
        yield dir_path, dir_names, file_names


def scan_files(root, extensions):
    """
    Recursively collect files under root whose name matches one of extensions.

    Never raises: a missing root yields an empty list and unreadable
    directories are logged and skipped.
    """
    if not os.path.isdir(root):
        logger.warning(f"Source directory does not exist: {root}")
        return []

    def _on_walk_error(error):
        logger.warning(f"Skipping unreadable entry {getattr(error, 'filename', '')}: {error}")

    found = []
    for dir_path, _, file_names in walk_tree(root, onerror=_on_walk_error):
        for file_name in sorted(file_names):
            if matches_extension(file_name, extensions):
                found.append(os.path.join(dir_path, file_name))

    logger.debug(f"Found {len(found)} files in {root}")
    return found


def log_scan_diagnostics(root, extensions, limit=10):
    """Debug helper: compare total and matching file counts under root."""
    logger.debug(f"Source Directory: {root}")
    logger.debug(f"Directory Exists: {os.path.isdir(root)}")
    if not os.path.isdir(root):
        return

    total = 0
    matching = []
    for dir_path, _, file_names in walk_tree(root):
        total += len(file_names)
        matching.extend(
            os.path.join(dir_path, name) for name in file_names if matches_extension(name, extensions)
        )

    logger.debug(f"Total Files Found: {total}")
    logger.debug(f"Matching Files: {len(matching)}")
    if matching:
        logger.debug(f"First {min(limit, len(matching))} matching files:")
        for path in sorted(matching)[:limit]:
            logger.debug(f"  - {path}")
