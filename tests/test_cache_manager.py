"""
Tests for the processed-files store.
"""
import os
import threading

from fastdl.cache_manager import (
    ProcessedSet,
    load_processed_files,
    read_processed_files,
    save_processed_files,
)


def test_load_creates_missing_file(tmp_path):
    path = tmp_path / "state" / "processed_files.txt"

    processed = load_processed_files(str(path))

    assert len(processed) == 0
    assert path.exists()
    assert path.read_text() == ""


def test_load_trims_and_dedups_case_insensitively(tmp_path):
    path = tmp_path / "processed_files.txt"
    path.write_text("cstrike:maps/a.bsp\nCSTRIKE:MAPS/A.BSP\n\n   \n  tf:maps/b.bsp  \n", encoding="utf-8")

    processed = load_processed_files(str(path))

    assert len(processed) == 2
    assert "cstrike:Maps/A.bsp" in processed
    assert "tf:maps/b.bsp" in processed


def test_save_writes_sorted_lines_without_leftovers(tmp_path):
    path = tmp_path / "processed_files.txt"
    processed = ProcessedSet(["tf:maps/b.bsp", "cstrike:maps/Z.bsp", "cstrike:maps/a.bsp"])

    assert save_processed_files(str(path), processed) is True

    assert path.read_text(encoding="utf-8").splitlines() == [
        "cstrike:maps/a.bsp",
        "cstrike:maps/Z.bsp",
        "tf:maps/b.bsp",
    ]
    assert not os.path.exists(str(path) + ".tmp")
    assert not os.path.exists(str(path) + ".backup")


def test_save_then_load_keeps_first_spelling(tmp_path):
    path = tmp_path / "processed_files.txt"
    processed = ProcessedSet(["cstrike:Maps/A.bsp", "cstrike:maps/a.bsp"])
    save_processed_files(str(path), processed)

    assert load_processed_files(str(path)).snapshot() == ["cstrike:Maps/A.bsp"]


def test_failed_replace_leaves_previous_file_intact(tmp_path, monkeypatch):
    """A save that dies before the swap keeps the old list readable."""
    path = tmp_path / "processed_files.txt"
    save_processed_files(str(path), ProcessedSet(["cstrike:maps/a.bsp"]))
    previous = path.read_text(encoding="utf-8")

    real_replace = os.replace

    def failing_replace(src, dst):
        if str(src).endswith(".tmp"):
            raise OSError("simulated crash during rename")
        return real_replace(src, dst)

    monkeypatch.setattr(os, "replace", failing_replace)

    assert save_processed_files(str(path), ProcessedSet(["cstrike:maps/a.bsp", "x:y"])) is False
    assert path.read_text(encoding="utf-8") == previous
    assert not os.path.exists(str(path) + ".tmp")
    assert load_processed_files(str(path)).snapshot() == ["cstrike:maps/a.bsp"]


def test_failed_temp_write_leaves_previous_file_intact(tmp_path, monkeypatch):
    path = tmp_path / "processed_files.txt"
    save_processed_files(str(path), ProcessedSet(["cstrike:maps/a.bsp"]))

    def failing_fsync(fd):
        raise OSError("simulated I/O error")

    monkeypatch.setattr(os, "fsync", failing_fsync)

    assert save_processed_files(str(path), ProcessedSet(["other:key"])) is False
    assert path.read_text(encoding="utf-8") == "cstrike:maps/a.bsp\n"
    assert not os.path.exists(str(path) + ".tmp")


def test_load_restores_backup_when_list_is_missing(tmp_path):
    path = tmp_path / "processed_files.txt"
    backup = tmp_path / "processed_files.txt.backup"
    backup.write_text("cstrike:maps/a.bsp\n", encoding="utf-8")

    processed = load_processed_files(str(path))

    assert "cstrike:maps/a.bsp" in processed
    assert path.exists()
    assert not backup.exists()


def test_processed_set_concurrent_adds_lose_nothing():
    processed = ProcessedSet()
    keys_per_thread = 200

    def worker(thread_id):
        for i in range(keys_per_thread):
            processed.add(f"srv:file_{thread_id}_{i}.bsp")
            processed.add(f"SRV:FILE_{thread_id}_{i}.BSP")

    threads = [threading.Thread(target=worker, args=(t,)) for t in range(16)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert len(processed) == 16 * keys_per_thread


def test_processed_set_add_reports_novelty():
    processed = ProcessedSet()
    assert processed.add("srv:a.bsp") is True
    assert processed.add("SRV:A.BSP") is False


def test_read_only_loader_uses_backup_without_touching_files(tmp_path):
    path = tmp_path / "processed_files.txt"
    backup = tmp_path / "processed_files.txt.backup"
    backup.write_text("cstrike:maps/a.bsp\n", encoding="utf-8")

    processed = read_processed_files(str(path))

    assert processed.snapshot() == ["cstrike:maps/a.bsp"]
    assert not path.exists()
    assert backup.exists()


def test_read_only_loader_on_empty_directory(tmp_path):
    path = tmp_path / "state" / "processed_files.txt"

    assert len(read_processed_files(str(path))) == 0
    assert not (tmp_path / "state").exists()
