"""
Pytest configuration and shared fixtures.
"""
import threading

import pytest

from fastdl.cache_manager import ProcessedSet
from fastdl.compression import PythonBz2Backend
from fastdl.config_validator import ServerEntry
from fastdl.processor import FastDLProcessor


class CountingBackend(PythonBz2Backend):
    """Built-in bzip2 backend that records every compress call."""

    def __init__(self, fail_for=(), **kwargs):
        super().__init__(**kwargs)
        self.fail_for = tuple(fail_for)
        self.calls = []
        self._lock = threading.Lock()

    def compress(self, source_path, destination_path):
        with self._lock:
            self.calls.append(source_path)
        if self.fail_for and source_path.endswith(self.fail_for):
            return False
        return super().compress(source_path, destination_path)


def write_file(path, content=b"content"):
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(content)
    return path


@pytest.fixture
def cstrike_server(tmp_path):
    """A server with three content files and one file of an unwatched type."""
    source = tmp_path / "srv" / "cstrike"
    destination = tmp_path / "fastdl" / "cstrike"
    write_file(source / "maps" / "de_dust2.bsp", b"BSP" * 1000)
    write_file(source / "maps" / "de_dust2.nav", b"NAV" * 500)
    write_file(source / "models" / "player" / "ct.mdl", b"MDL" * 800)
    write_file(source / "cfg" / "server.cfg", b"hostname test")
    return ServerEntry(name="cstrike", source=str(source), destination=str(destination))


@pytest.fixture
def processed_path(tmp_path):
    return str(tmp_path / "state" / "processed_files.txt")


@pytest.fixture
def backend():
    return CountingBackend(level=1)


@pytest.fixture
def make_processor(processed_path):
    """Factory for processors with test-friendly defaults."""

    def _make(backend, processed=None, **overrides):
        options = dict(
            extensions={".bsp", ".nav", ".mdl"},
            processed=processed if processed is not None else ProcessedSet(),
            processed_files_path=processed_path,
            max_workers=4,
            batch_size=10,
            checkpoint_every_batches=2,
            growth_check_interval=0,
        )
        options.update(overrides)
        return FastDLProcessor(backend=backend, **options)

    return _make
