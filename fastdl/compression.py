"""
File compression backends producing bzip2 artifacts for FastDL.

Three variants share one contract, ``compress(source_path, destination_path)``:
the external ``bzip2`` tool, 7-Zip in bzip2 mode, and the standard library
``bz2`` module as the always-available fallback.
"""

import bz2
import enum
import functools
import os
import shutil
import subprocess
from typing import Dict, List, Optional

from .config import DEFAULT_COMPRESSION_LEVEL, DEFAULT_COMPRESSION_TIMEOUT, PARTIAL_SUFFIX
from .file_utils import set_public_permissions
from .logger import logger

SEVEN_ZIP_WINDOWS_PATHS = [
    r"C:\Program Files\7-Zip\7z.exe",
    r"C:\Program Files (x86)\7-Zip\7z.exe",
]

_CHUNK_SIZE = 1024 * 1024


class FastDLError(Exception):
    """Base class for fastdl errors."""


class CompressionUnavailableError(FastDLError):
    """No compression backend can be used on this host."""


class CompressionBackendKind(enum.Enum):
    BZIP2 = "bzip2"
    SEVEN_ZIP = "7z"
    PYTHON_BZ2 = "python-bz2"


@functools.lru_cache(maxsize=None)
def find_tool(name: str) -> Optional[str]:
    """Locate an external tool once per process; availability does not change mid-run."""
    path = shutil.which(name)
    if path:
        return path
    if os.name == "nt" and name in ("7z", "7z.exe"):
        for candidate in SEVEN_ZIP_WINDOWS_PATHS:
            if os.path.isfile(candidate):
                return candidate
    return None


def _remove_quietly(path):
    try:
        os.remove(path)
    except FileNotFoundError:
        pass
    except OSError as e:
        logger.warning(f"Could not remove partial file {path}: {e}")


def detached_process_options():
    """
    Keyword arguments that start a compressor outside our process group.

    A terminal Ctrl+C signals the whole foreground group; the tool handles it
    by finishing the current batch, so the compressors must not receive it.
    """
    if os.name == "nt":
        return {"creationflags": subprocess.CREATE_NEW_PROCESS_GROUP}
    return {"start_new_session": True}


class CompressionBackend:
    """
    Compress a single file into a bzip2 artifact.

    Subclasses implement ``_write``, which must produce the complete artifact
    at the temporary path it is given. The base class creates the parent
    directory, swaps the finished file into place, removes leftovers on
    failure and applies the public permissions.
    """

    kind: CompressionBackendKind

    def __init__(self, level=DEFAULT_COMPRESSION_LEVEL, timeout=DEFAULT_COMPRESSION_TIMEOUT):
        self.level = level
        self.timeout = timeout

    @property
    def tool_path(self) -> Optional[str]:
        return None

    def describe(self):
        if self.tool_path:
            return f"{self.kind.value} ({self.tool_path})"
        return self.kind.value

    def _write(self, source_path, partial_path):
        raise NotImplementedError

    def compress(self, source_path, destination_path) -> bool:
        """
        Compress source_path to destination_path, overwriting it.
        Returns True if successful, False if compression failed.
        """
        partial_path = destination_path + PARTIAL_SUFFIX
        try:
            parent = os.path.dirname(destination_path)
            if parent:
                os.makedirs(parent, exist_ok=True)

            _remove_quietly(partial_path)
            self._write(source_path, partial_path)

            if not os.path.exists(partial_path):
                logger.error(f"Compressed file was not created: {destination_path}")
                return False
            os.replace(partial_path, destination_path)

        except subprocess.TimeoutExpired:
            logger.error(f"Compression timeout for {source_path}")
            _remove_quietly(partial_path)
            return False
        except subprocess.CalledProcessError as e:
            stderr = (e.stderr or b"").decode(errors="replace").strip()
            logger.error(f"Compression failed for {source_path}: exit code {e.returncode} {stderr}")
            _remove_quietly(partial_path)
            return False
        except OSError as e:
            logger.error(f"Compression failed for {source_path}: {e}")
            _remove_quietly(partial_path)
            return False
        except BaseException:
            _remove_quietly(partial_path)
            raise

        set_public_permissions(destination_path)

        try:
            original_size = os.path.getsize(source_path)
            compressed_size = os.path.getsize(destination_path)
        except OSError:
            return True
        if original_size:
            reduction = ((original_size - compressed_size) / original_size) * 100
            logger.debug(
                f"Compression complete: {os.path.basename(source_path)} "
                f"({original_size:,} → {compressed_size:,} bytes, "
                f"{reduction:.1f}% reduction)"
            )
        return True


class Bzip2Backend(CompressionBackend):
    """External bzip2 writing to stdout."""

    kind = CompressionBackendKind.BZIP2

    @property
    def tool_path(self):
        return find_tool("bzip2")

    def _write(self, source_path, partial_path):
        tool = self.tool_path
        if not tool:
            raise FileNotFoundError("bzip2 command not found")
        with open(partial_path, "wb") as out:
            subprocess.run(
                [tool, "-c", f"-{self.level}", source_path],
                stdout=out,
                stderr=subprocess.PIPE,
                check=True,
                timeout=self.timeout,
                **detached_process_options(),
            )


class SevenZipBackend(CompressionBackend):
    """7-Zip producing a single-file bzip2 archive."""

    kind = CompressionBackendKind.SEVEN_ZIP

    @property
    def tool_path(self):
        return find_tool("7z")

    def _write(self, source_path, partial_path):
        tool = self.tool_path
        if not tool:
            raise FileNotFoundError("7z command not found")
        # 7z picks the format from -t, the .part name does not matter
        subprocess.run(
            [tool, "a", "-tbzip2", f"-mx={self.level}", "-y", "-bd", partial_path, source_path],
            stdout=subprocess.DEVNULL,
            stderr=subprocess.PIPE,
            check=True,
            timeout=self.timeout,
            **detached_process_options(),
        )


class PythonBz2Backend(CompressionBackend):
    """In-process bzip2 using the standard library."""

    kind = CompressionBackendKind.PYTHON_BZ2

    def _write(self, source_path, partial_path):
        with open(source_path, "rb") as src, bz2.open(
            partial_path, "wb", compresslevel=self.level
        ) as dst:
            for chunk in iter(lambda: src.read(_CHUNK_SIZE), b""):
                dst.write(chunk)


BACKEND_CLASSES = {
    CompressionBackendKind.BZIP2: Bzip2Backend,
    CompressionBackendKind.SEVEN_ZIP: SevenZipBackend,
    CompressionBackendKind.PYTHON_BZ2: PythonBz2Backend,
}


def backend_priority(platform_name=None) -> List[CompressionBackendKind]:
    """Native tool for the host first, the built-in routine last."""
    platform_name = platform_name or os.name
    if platform_name == "nt":
        return [
            CompressionBackendKind.SEVEN_ZIP,
            CompressionBackendKind.BZIP2,
            CompressionBackendKind.PYTHON_BZ2,
        ]
    return [
        CompressionBackendKind.BZIP2,
        CompressionBackendKind.SEVEN_ZIP,
        CompressionBackendKind.PYTHON_BZ2,
    ]


def is_backend_available(kind: CompressionBackendKind) -> bool:
    if kind is CompressionBackendKind.BZIP2:
        return find_tool("bzip2") is not None
    if kind is CompressionBackendKind.SEVEN_ZIP:
        return find_tool("7z") is not None
    return kind is CompressionBackendKind.PYTHON_BZ2


def detect_available_backends() -> Dict[CompressionBackendKind, bool]:
    """Availability of every backend, for the startup display."""
    return {kind: is_backend_available(kind) for kind in CompressionBackendKind}


def select_backend(
    level=DEFAULT_COMPRESSION_LEVEL,
    timeout=DEFAULT_COMPRESSION_TIMEOUT,
    prefer: Optional[CompressionBackendKind] = None,
    platform_name=None,
) -> CompressionBackend:
    """
    Pick the first usable backend in priority order.

    A preferred kind is tried first when given. Raises
    CompressionUnavailableError if nothing is usable.
    """
    order = backend_priority(platform_name)
    if prefer is not None:
        order = [prefer] + [kind for kind in order if kind is not prefer]

    for kind in order:
        if is_backend_available(kind):
            backend = BACKEND_CLASSES[kind](level=level, timeout=timeout)
            logger.debug(f"Selected compression backend: {backend.describe()}")
            return backend
        logger.debug(f"Compression backend not available: {kind.value}")

    raise CompressionUnavailableError("No usable compression backend found")
