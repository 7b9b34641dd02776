"""
Tests for compression backends and backend selection.
"""
import bz2
import os
import shutil
import stat
import subprocess
import sys
import textwrap

import pytest

from fastdl import compression
from fastdl.compression import (
    Bzip2Backend,
    CompressionBackendKind,
    CompressionUnavailableError,
    PythonBz2Backend,
    SevenZipBackend,
    select_backend,
)


@pytest.fixture
def source_file(tmp_path):
    path = tmp_path / "src" / "de_dust2.bsp"
    path.parent.mkdir(parents=True)
    path.write_bytes(b"VBSP" + os.urandom(256) + b"\x00" * 4096)
    return path


def test_builtin_backend_produces_bzip2(tmp_path, source_file):
    destination = tmp_path / "out" / "maps" / "de_dust2.bsp.bz2"

    assert PythonBz2Backend(level=1).compress(str(source_file), str(destination)) is True

    assert bz2.decompress(destination.read_bytes()) == source_file.read_bytes()
    assert not os.path.exists(str(destination) + ".part")


@pytest.mark.skipif(os.name != "posix", reason="POSIX permissions")
def test_artifact_is_world_accessible(tmp_path, source_file):
    destination = tmp_path / "out" / "de_dust2.bsp.bz2"
    PythonBz2Backend().compress(str(source_file), str(destination))
    assert stat.S_IMODE(os.stat(destination).st_mode) == 0o777


def test_backend_overwrites_existing_destination(tmp_path, source_file):
    destination = tmp_path / "de_dust2.bsp.bz2"
    destination.write_bytes(b"stale")

    assert PythonBz2Backend().compress(str(source_file), str(destination)) is True
    assert bz2.decompress(destination.read_bytes()) == source_file.read_bytes()


def test_missing_source_fails_without_leftovers(tmp_path):
    destination = tmp_path / "out" / "gone.bsp.bz2"

    assert PythonBz2Backend().compress(str(tmp_path / "gone.bsp"), str(destination)) is False
    assert not destination.exists()
    assert not os.path.exists(str(destination) + ".part")


class _BrokenBackend(PythonBz2Backend):
    def __init__(self, error):
        super().__init__()
        self.error = error

    def _write(self, source_path, partial_path):
        with open(partial_path, "wb") as f:
            f.write(b"half written")
        raise self.error


@pytest.mark.parametrize(
    "error",
    [
        OSError("disk full"),
        subprocess.TimeoutExpired(cmd="bzip2", timeout=1),
        subprocess.CalledProcessError(returncode=2, cmd="bzip2", stderr=b"bzip2: I/O error"),
    ],
)
def test_failure_removes_partial_output(tmp_path, source_file, error):
    destination = tmp_path / "de_dust2.bsp.bz2"

    assert _BrokenBackend(error).compress(str(source_file), str(destination)) is False
    assert not destination.exists()
    assert not os.path.exists(str(destination) + ".part")


def test_failure_keeps_previous_artifact(tmp_path, source_file):
    """A failed overwrite never truncates what was already there."""
    destination = tmp_path / "de_dust2.bsp.bz2"
    destination.write_bytes(b"previous")

    assert _BrokenBackend(OSError("boom")).compress(str(source_file), str(destination)) is False
    assert destination.read_bytes() == b"previous"


def test_bzip2_backend_without_tool_fails(tmp_path, source_file, monkeypatch):
    monkeypatch.setattr(compression, "find_tool", lambda name: None)
    destination = tmp_path / "de_dust2.bsp.bz2"

    assert Bzip2Backend().compress(str(source_file), str(destination)) is False
    assert not destination.exists()


@pytest.mark.skipif(shutil.which("bzip2") is None, reason="bzip2 not installed")
def test_bzip2_backend_round_trip(tmp_path, source_file):
    destination = tmp_path / "de_dust2.bsp.bz2"
    assert Bzip2Backend(level=1).compress(str(source_file), str(destination)) is True
    assert bz2.decompress(destination.read_bytes()) == source_file.read_bytes()


def test_select_falls_back_to_builtin(monkeypatch):
    monkeypatch.setattr(compression, "find_tool", lambda name: None)
    backend = select_backend()
    assert isinstance(backend, PythonBz2Backend)
    assert backend.kind is CompressionBackendKind.PYTHON_BZ2


def test_select_prefers_native_tool_for_platform(monkeypatch):
    monkeypatch.setattr(compression, "find_tool", lambda name: f"/usr/bin/{name}")
    assert isinstance(select_backend(platform_name="posix"), Bzip2Backend)
    assert isinstance(select_backend(platform_name="nt"), SevenZipBackend)


def test_select_honours_preference(monkeypatch):
    monkeypatch.setattr(compression, "find_tool", lambda name: f"/usr/bin/{name}")
    backend = select_backend(prefer=CompressionBackendKind.PYTHON_BZ2)
    assert isinstance(backend, PythonBz2Backend)


def test_select_passes_level_and_timeout(monkeypatch):
    monkeypatch.setattr(compression, "find_tool", lambda name: None)
    backend = select_backend(level=3, timeout=42)
    assert (backend.level, backend.timeout) == (3, 42)


def test_select_raises_when_nothing_usable(monkeypatch):
    monkeypatch.setattr(compression, "is_backend_available", lambda kind: False)
    with pytest.raises(CompressionUnavailableError):
        select_backend()


def test_detect_reports_every_backend(monkeypatch):
    monkeypatch.setattr(compression, "find_tool", lambda name: None)
    availability = compression.detect_available_backends()
    assert set(availability) == set(CompressionBackendKind)
    assert availability[CompressionBackendKind.PYTHON_BZ2] is True
    assert availability[CompressionBackendKind.BZIP2] is False


def test_external_tools_run_outside_our_process_group(tmp_path, source_file, monkeypatch):
    calls = []

    def fake_run(args, **kwargs):
        calls.append(kwargs)
        out = kwargs["stdout"]
        if hasattr(out, "write"):
            out.write(bz2.compress(b"x"))
        else:
            with open(args[-2], "wb") as archive:
                archive.write(bz2.compress(b"x"))

    monkeypatch.setattr(compression, "find_tool", lambda name: "/usr/bin/" + name)
    monkeypatch.setattr(compression.subprocess, "run", fake_run)

    assert Bzip2Backend().compress(str(source_file), str(tmp_path / "a.bsp.bz2")) is True
    assert SevenZipBackend().compress(str(source_file), str(tmp_path / "b.bsp.bz2")) is True

    expected = compression.detached_process_options()
    assert len(calls) == 2
    for kwargs in calls:
        for key, value in expected.items():
            assert kwargs[key] == value


_CTRL_C_SCRIPT = textwrap.dedent(
    """
    import os, signal, sys, threading, time
    from fastdl.compression import Bzip2Backend

    source, destination = sys.argv[1], sys.argv[2]
    stop = threading.Event()
    signal.signal(signal.SIGINT, lambda signum, frame: stop.set())

    outcome = {}
    worker = threading.Thread(
        target=lambda: outcome.update(ok=Bzip2Backend(level=9).compress(source, destination))
    )
    worker.start()
    while not os.path.exists(destination + ".part"):
        time.sleep(0.01)
    time.sleep(0.3)
    os.killpg(os.getpgrp(), signal.SIGINT)
    worker.join()
    print(stop.is_set(), outcome.get("ok"))
    """
)


@pytest.mark.skipif(os.name != "posix", reason="process groups")
@pytest.mark.skipif(shutil.which("bzip2") is None, reason="bzip2 not installed")
def test_ctrl_c_lets_running_bzip2_finish(tmp_path):
    source = tmp_path / "big.bsp"
    source.write_bytes(os.urandom(24 * 1024 * 1024))
    destination = tmp_path / "big.bsp.bz2"
    package_root = os.path.dirname(os.path.dirname(os.path.abspath(compression.__file__)))
    env = dict(os.environ, PYTHONPATH=package_root)

    # Own session, so the group-wide SIGINT never reaches the test runner
    completed = subprocess.run(
        [sys.executable, "-c", _CTRL_C_SCRIPT, str(source), str(destination)],
        capture_output=True,
        text=True,
        timeout=300,
        env=env,
        start_new_session=True,
    )

    assert completed.returncode == 0, completed.stderr
    assert completed.stdout.split()[-2:] == ["True", "True"]
    assert destination.exists()
    assert not os.path.exists(str(destination) + ".part")
