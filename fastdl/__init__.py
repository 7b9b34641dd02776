"""
Source Engine FastDL Watcher (fastdl)

Keeps a bzip2-compressed FastDL mirror of game server content up to date.
"""

__version__ = "1.0.0"
__author__ = "fastdl"
__description__ = "Source Engine FastDL Watcher"

# Import main components
from .cache_manager import (
    ProcessedSet,
    load_processed_files,
    read_processed_files,
    save_processed_files,
)
from .compression import (
    CompressionBackend,
    CompressionBackendKind,
    CompressionUnavailableError,
    FastDLError,
    select_backend,
)
from .config import COMPRESSED_SUFFIX, DEFAULT_EXTENSIONS, VERSION
from .config_validator import AppConfig, ConfigLoader, ServerEntry, parse_file_types
from .file_utils import make_processed_key, normalize_path, relative_of
from .logger import log_error, log_step, logger, setup_logger
from .processor import CompressionTask, CycleResult, FastDLProcessor, ServerResult
from .scanner import scan_files
from .scheduler import Scheduler, SchedulerState
