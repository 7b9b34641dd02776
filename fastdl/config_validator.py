"""
Configuration validation and management for fastdl.
Provides type-safe configuration handling; bad input falls back to defaults.
"""

import json
import os
import time
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from .config import (
    DEFAULT_BATCH_SIZE,
    DEFAULT_CHECK_INTERVAL,
    DEFAULT_CHECKPOINT_EVERY_BATCHES,
    DEFAULT_COMPRESSION_LEVEL,
    DEFAULT_COMPRESSION_TIMEOUT,
    DEFAULT_EXTENSIONS,
    DEFAULT_FILE_TYPES,
    DEFAULT_GROWTH_CHECK_INTERVAL,
    DEFAULT_LOG_FILE,
    DEFAULT_PROCESSED_FILES_PATH,
    DEFAULT_RUN_24X7,
    MAX_PARALLEL_WORKERS,
)
from .file_utils import normalize_path
from .logger import logger


@dataclass(frozen=True)
class ServerEntry:
    """One game server whose content is mirrored."""

    name: str
    source: str
    destination: str

    def __post_init__(self):
        if not self.name:
            raise ValueError("Server name cannot be empty")
        if ":" in self.name:
            raise ValueError(
                f"Server name cannot contain ':' (it separates the server name from the "
                f"file path in processed keys): {self.name}"
            )
        if not self.source:
            raise ValueError(f"Source directory missing for server {self.name}")
        if not self.destination:
            raise ValueError(f"Destination directory missing for server {self.name}")
        object.__setattr__(self, "source", normalize_path(self.source))
        object.__setattr__(self, "destination", normalize_path(self.destination))


def default_worker_count() -> int:
    """Workers derived from the processing units available to this process."""
    try:
        cpus = len(os.sched_getaffinity(0))
    except (AttributeError, OSError):
        cpus = os.cpu_count() or 1
    return max(1, min(MAX_PARALLEL_WORKERS, cpus))


@dataclass
class AppConfig:
    """Main application configuration."""

    check_interval: int = DEFAULT_CHECK_INTERVAL
    file_types: str = DEFAULT_FILE_TYPES
    processed_files_path: str = DEFAULT_PROCESSED_FILES_PATH
    run_24x7: bool = DEFAULT_RUN_24X7
    debug_logs: bool = False
    servers: List[ServerEntry] = field(default_factory=list)
    compression_level: int = DEFAULT_COMPRESSION_LEVEL
    parallel_workers: Optional[int] = None
    batch_size: int = DEFAULT_BATCH_SIZE
    checkpoint_every_batches: int = DEFAULT_CHECKPOINT_EVERY_BATCHES
    compression_timeout: int = DEFAULT_COMPRESSION_TIMEOUT
    growth_check_interval: float = DEFAULT_GROWTH_CHECK_INTERVAL
    log_file: str = DEFAULT_LOG_FILE

    def __post_init__(self):
        if self.check_interval < 1:
            raise ValueError(f"Check interval must be at least 1 second, got: {self.check_interval}")
        if not (1 <= self.compression_level <= 9):
            raise ValueError(f"Compression level must be 1-9, got: {self.compression_level}")
        if self.parallel_workers is not None and not (
            1 <= self.parallel_workers <= MAX_PARALLEL_WORKERS
        ):
            raise ValueError(
                f"Parallel workers must be 1-{MAX_PARALLEL_WORKERS}, got: {self.parallel_workers}"
            )
        if self.batch_size < 1:
            raise ValueError(f"Batch size must be positive, got: {self.batch_size}")
        if self.checkpoint_every_batches < 1:
            raise ValueError(
                f"Checkpoint interval must be positive, got: {self.checkpoint_every_batches}"
            )
        if self.compression_timeout < 1:
            raise ValueError(f"Compression timeout must be positive, got: {self.compression_timeout}")
        if self.growth_check_interval < 0:
            raise ValueError(
                f"Growth check interval cannot be negative, got: {self.growth_check_interval}"
            )
        if not self.processed_files_path:
            raise ValueError("Processed files path cannot be empty")

    @property
    def extensions(self) -> frozenset:
        return parse_file_types(self.file_types)

    @property
    def workers(self) -> int:
        return self.parallel_workers or default_worker_count()


def parse_file_types(file_types) -> frozenset:
    """
    Turn 'bsp, .NAV,mdl' into {'.bsp', '.nav', '.mdl'}.
    Falls back to the built-in defaults when nothing usable is listed.
    """
    extensions = set()
    if isinstance(file_types, str):
        for item in file_types.split(","):
            item = item.strip().lower()
            if not item:
                continue
            extensions.add(item if item.startswith(".") else "." + item)
    elif file_types:
        logger.warning(f"Ignoring invalid file types setting: {file_types!r}")

    if not extensions:
        return DEFAULT_EXTENSIONS
    return frozenset(extensions)


# JSON key -> (AppConfig field, expected type)
_JSON_FIELDS = {
    "CheckInterval": ("check_interval", int),
    "FileTypes": ("file_types", str),
    "ProcessedFilesPath": ("processed_files_path", str),
    "Run24x7": ("run_24x7", bool),
    "DebugLogs": ("debug_logs", bool),
    "CompressionLevel": ("compression_level", int),
    "ParallelWorkers": ("parallel_workers", int),
    "BatchSize": ("batch_size", int),
    "CheckpointEveryBatches": ("checkpoint_every_batches", int),
    "CompressionTimeout": ("compression_timeout", int),
    "GrowthCheckInterval": ("growth_check_interval", float),
    "LogFile": ("log_file", str),
}

_TRUE_STRINGS = ("true", "yes", "1", "on")
_FALSE_STRINGS = ("false", "no", "0", "off")


class ConfigLoader:
    """Configuration loader; every problem is logged and replaced by a default."""

    @staticmethod
    def _coerce(value, expected):
        if expected is bool:
            if isinstance(value, bool):
                return value
            if isinstance(value, str) and value.lower() in _TRUE_STRINGS + _FALSE_STRINGS:
                return value.lower() in _TRUE_STRINGS
            raise ValueError(f"expected a boolean, got {value!r}")
        if expected is int:
            if isinstance(value, bool):
                raise ValueError(f"expected an integer, got {value!r}")
            return int(value)
        if expected is float:
            if isinstance(value, bool):
                raise ValueError(f"expected a number, got {value!r}")
            return float(value)
        if not isinstance(value, expected):
            raise ValueError(f"expected {expected.__name__}, got {value!r}")
        return value

    @classmethod
    def _parse_servers(cls, raw) -> List[ServerEntry]:
        servers = []
        if not isinstance(raw, list):
            if raw is not None:
                logger.warning("Config 'Servers' must be a list, ignoring it")
            return servers

        seen = set()
        for index, item in enumerate(raw):
            if not isinstance(item, dict):
                logger.warning(f"Ignoring server entry #{index + 1}: not an object")
                continue
            try:
                server = ServerEntry(
                    name=str(item.get("Name", "")).strip(),
                    source=str(item.get("Source", "")).strip(),
                    destination=str(item.get("Destination", "")).strip(),
                )
            except ValueError as e:
                logger.warning(f"Ignoring server entry #{index + 1}: {e}")
                continue
            if server.name.lower() in seen:
                logger.warning(f"Ignoring duplicate server name: {server.name}")
                continue
            seen.add(server.name.lower())
            servers.append(server)
        return servers

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> AppConfig:
        """Build an AppConfig from the JSON document, field by field."""
        config = AppConfig()
        if not isinstance(data, dict):
            logger.warning("Config root must be an object, using defaults")
            return config

        for key, (attr, expected) in _JSON_FIELDS.items():
            if key not in data or data[key] is None:
                continue
            try:
                value = cls._coerce(data[key], expected)
                candidate = AppConfig(**{**config.__dict__, attr: value})
            except (TypeError, ValueError) as e:
                logger.warning(f"Invalid value for {key}, using default: {e}")
                continue
            config = candidate

        config.servers = cls._parse_servers(data.get("Servers"))
        return config

    @staticmethod
    def to_dict(config: AppConfig) -> Dict[str, Any]:
        data = {key: getattr(config, attr) for key, (attr, _) in _JSON_FIELDS.items()}
        data["Servers"] = [
            {"Name": s.name, "Source": s.source, "Destination": s.destination}
            for s in config.servers
        ]
        return data

    @classmethod
    def save(cls, path, config: AppConfig) -> bool:
        """Write config as indented JSON. Returns True if successful."""
        try:
            parent = os.path.dirname(os.path.abspath(path))
            os.makedirs(parent, exist_ok=True)
            with open(path, "w", encoding="utf-8") as f:
                json.dump(cls.to_dict(config), f, indent=2)
                f.write("\n")
            return True
        except OSError as e:
            logger.error(f"Error saving config {path}: {e}")
            return False

    @classmethod
    def load(cls, path, create_missing=True) -> AppConfig:
        """
        Load config from a JSON file.

        A missing file is created with default values unless create_missing
        is False. Unreadable or malformed files yield the defaults; the
        process keeps running.
        """
        if not os.path.exists(path):
            logger.warning(f"Config file not found: {path}")
            config = AppConfig()
            if create_missing:
                logger.info("Creating default config...")
                cls.save(path, config)
            return config

        try:
            with open(path, "r", encoding="utf-8-sig") as f:
                data = json.load(f)
        except (OSError, ValueError) as e:
            logger.error(f"Error loading config {path}: {e}")
            return AppConfig()

        return cls.from_dict(data)


class PerformanceMetrics:
    """Performance metrics collection and reporting."""

    def __init__(self):
        self.metrics: Dict[str, Dict[str, Any]] = {}
        self.start_times: Dict[str, float] = {}

    def start_operation(self, operation: str):
        """Start timing an operation."""
        self.start_times[operation] = time.time()

    def end_operation(self, operation: str, **metadata):
        """End timing an operation and record metrics."""
        if operation not in self.start_times:
            logger.warning(f"No start time recorded for operation: {operation}")
            return

        duration = time.time() - self.start_times.pop(operation)
        self.metrics[operation] = {"duration": duration, "timestamp": time.time(), **metadata}

    def reset(self):
        self.metrics.clear()
        self.start_times.clear()

    def get_summary(self) -> Dict[str, Any]:
        """Get performance summary."""
        total_time = sum(m["duration"] for m in self.metrics.values())
        return {
            "total_duration": total_time,
            "operations": len(self.metrics),
            "breakdown": {op: m["duration"] for op, m in self.metrics.items()},
            "detailed_metrics": self.metrics,
        }

    def log_summary(self):
        """Log performance summary at debug level."""
        summary = self.get_summary()
        logger.debug("=== PERFORMANCE SUMMARY ===")
        logger.debug(f"Total Duration: {summary['total_duration']:.2f}s")
        logger.debug(f"Operations: {summary['operations']}")

        for operation, duration in summary["breakdown"].items():
            percentage = (
                (duration / summary["total_duration"]) * 100 if summary["total_duration"] > 0 else 0
            )
            logger.debug(f"  {operation}: {duration:.2f}s ({percentage:.1f}%)")
