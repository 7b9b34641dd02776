#!/usr/bin/env python3
"""
Cache validation utility to check the processed files list against the
FastDL mirrors and provide recommendations.
"""

import argparse
import os

from fastdl.cache_manager import read_processed_files
from fastdl.config import BACKUP_SUFFIX, COMPRESSED_SUFFIX, DEFAULT_CONFIG_PATH, TEMP_SUFFIX
from fastdl.config_validator import ConfigLoader


def count_artifacts(destination):
    """Count compressed artifacts below a destination root."""
    count = 0
    for _, _, files in os.walk(destination):
        count += sum(1 for name in files if name.lower().endswith(COMPRESSED_SUFFIX))
    return count


def collect_cache_status(config, processed=None):
    """
    Per-server key and artifact counts plus leftovers of interrupted saves.

    Read-only: leftovers are recorded before the list is read, and the list
    is read without creating or restoring it.
    """
    path = config.processed_files_path
    status = {
        "processed_files_path": path,
        "list_exists": os.path.exists(path),
        "leftovers": [
            path + suffix for suffix in (TEMP_SUFFIX, BACKUP_SUFFIX) if os.path.exists(path + suffix)
        ],
        "servers": {},
    }
    if processed is None:
        processed = read_processed_files(path)
    status["total_entries"] = len(processed)

    keys = processed.snapshot()
    for server in config.servers:
        prefix = f"{server.name}:".casefold()
        entries = sum(1 for key in keys if key.casefold().startswith(prefix))
        status["servers"][server.name] = {
            "entries": entries,
            "destination_exists": os.path.isdir(server.destination),
            "artifacts": count_artifacts(server.destination)
            if os.path.isdir(server.destination)
            else 0,
        }
    return status


def check_cache_status(config_path):
    """Check the current cache status and provide recommendations."""
    if not os.path.exists(config_path):
        print(f"Config file not found: {config_path} - reporting with default settings\n")
    config = ConfigLoader.load(config_path, create_missing=False)
    status = collect_cache_status(config)

    print("=== FASTDL Cache Status Check ===\n")
    print(f"Processed files list: {status['processed_files_path']}")
    if not status["list_exists"]:
        if status["total_entries"]:
            print("  ✗ MISSING - entries below come from the backup, next run restores it")
        else:
            print("  ✗ MISSING - next run rebuilds it from the existing mirror")
    print(f"  Entries: {status['total_entries']}")

    print("\nServers:")
    for name, info in status["servers"].items():
        print(f"  {name}")
        if not info["destination_exists"]:
            print("    ✗ Destination missing")
            continue
        print(f"    Recorded entries:     {info['entries']}")
        print(f"    Compressed artifacts: {info['artifacts']}")
        if info["artifacts"] > info["entries"]:
            print("    ⚠ More artifacts than entries - they will be re-recorded without recompressing")

    print("\n=== Recommendations ===")
    if status["leftovers"]:
        for path in status["leftovers"]:
            print(f"• Leftover from an interrupted save: {path} - safe to remove once the list loads")
    else:
        print("• No leftovers from interrupted saves")
    print("• Delete the processed files list to force a full re-check of every server")


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Report processed files list coverage.")
    parser.add_argument("--config", default=os.environ.get("FASTDL_CONFIG", DEFAULT_CONFIG_PATH))
    check_cache_status(parser.parse_args().config)
