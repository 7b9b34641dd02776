"""
Main processing logic: scan each server's source tree, skip what is already
recorded or already mirrored, compress the rest in parallel batches and
checkpoint the processed list as work completes.
"""

import enum
import os
import threading
import time
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from typing import Iterable, List, Optional

from .cache_manager import ProcessedSet, save_processed_files
from .compression import CompressionBackend
from .config import (
    COMPRESSED_SUFFIX,
    DEFAULT_BATCH_SIZE,
    DEFAULT_CHECKPOINT_EVERY_BATCHES,
    DEFAULT_GROWTH_CHECK_INTERVAL,
)
from .config_validator import AppConfig, PerformanceMetrics, ServerEntry, default_worker_count
from .file_utils import (
    compressed_destination,
    is_contained_relative_path,
    is_file_growing,
    is_file_in_use,
    make_processed_key,
    relative_of,
)
from .logger import format_time, log_progress, logger
from .scanner import log_scan_diagnostics, scan_files


@dataclass(frozen=True)
class CompressionTask:
    source_path: str
    destination_path: str
    relative_path: str
    processed_key: str


class TaskOutcome(enum.Enum):
    COMPRESSED = "compressed"
    FAILED = "failed"
    BUSY = "busy"


@dataclass
class ServerResult:
    """Counters for one server run."""

    server: str
    discovered: int = 0
    already_processed: int = 0
    reconciled: int = 0
    queued: int = 0
    compressed: int = 0
    failed: int = 0
    busy: int = 0
    unresolved: int = 0
    duration: float = 0.0
    error: Optional[str] = None

    @property
    def changed(self) -> bool:
        return self.compressed > 0 or self.reconciled > 0


@dataclass
class CycleResult:
    servers: List[ServerResult] = field(default_factory=list)

    @property
    def compressed(self) -> int:
        return sum(r.compressed for r in self.servers)

    @property
    def changed(self) -> bool:
        return any(r.changed for r in self.servers)


class FastDLProcessor:
    """
    Incremental FastDL processing engine.

    Owns the processed set for the duration of a run. Scanning, filtering and
    reconciling happen on the calling thread; only compression fans out to
    the worker pool, one batch at a time. The processed list file is written
    by the calling thread between batches.
    """

    def __init__(
        self,
        backend: CompressionBackend,
        extensions: Iterable[str],
        processed: ProcessedSet,
        processed_files_path: str,
        max_workers: Optional[int] = None,
        batch_size: int = DEFAULT_BATCH_SIZE,
        checkpoint_every_batches: int = DEFAULT_CHECKPOINT_EVERY_BATCHES,
        growth_check_interval: float = DEFAULT_GROWTH_CHECK_INTERVAL,
        debug: bool = False,
        stop_event: Optional[threading.Event] = None,
    ):
        self.backend = backend
        self.extensions = frozenset(extensions)
        self.processed = processed
        self.processed_files_path = processed_files_path
        self.max_workers = max_workers or default_worker_count()
        self.batch_size = max(1, batch_size)
        self.checkpoint_every_batches = max(1, checkpoint_every_batches)
        self.growth_check_interval = growth_check_interval
        self.debug = debug
        self.stop_event = stop_event or threading.Event()
        self.metrics = PerformanceMetrics()

    @classmethod
    def from_config(
        cls, config: AppConfig, backend: CompressionBackend, processed: ProcessedSet, debug=None
    ) -> "FastDLProcessor":
        return cls(
            backend=backend,
            extensions=config.extensions,
            processed=processed,
            processed_files_path=config.processed_files_path,
            max_workers=config.workers,
            batch_size=config.batch_size,
            checkpoint_every_batches=config.checkpoint_every_batches,
            growth_check_interval=config.growth_check_interval,
            debug=config.debug_logs if debug is None else debug,
        )

    def checkpoint(self) -> bool:
        """Persist the processed set. Returns True if the file was written."""
        saved = save_processed_files(self.processed_files_path, self.processed)
        if saved:
            logger.debug(f"Saved {len(self.processed)} processed files to {self.processed_files_path}")
        else:
            logger.warning("Processed files list not saved, will retry at the next checkpoint")
        return saved

    def process_all(self, servers: Iterable[ServerEntry]) -> CycleResult:
        """Process every server in configuration order."""
        self.metrics.reset()
        cycle = CycleResult()
        for server in servers:
            if self.stop_event.is_set():
                logger.info("Shutdown requested, skipping remaining servers")
                break
            cycle.servers.append(self.process_server(server))
        self.metrics.log_summary()
        return cycle

    def process_server(self, server: ServerEntry) -> ServerResult:
        """
        Run the discover, filter, reconcile, compress and checkpoint phases
        for one server. Errors are logged and reported in the result, never
        raised, so the remaining servers still get processed.
        """
        result = ServerResult(server=server.name)
        start_time = time.time()

        logger.info(f"Processing {server.name}...")
        logger.info(f"Source: {server.source}")
        logger.info(f"Destination: {server.destination}")

        try:
            self._process_server(server, result)
        except OSError as e:
            result.error = str(e)
            logger.error(f"Filesystem error while processing {server.name}, skipping: {e}")
        except Exception as e:
            result.error = str(e)
            logger.error(f"Unexpected error while processing {server.name}: {e}", exc_info=True)

        if result.error and result.changed:
            self.checkpoint()

        result.duration = time.time() - start_time
        if result.compressed > 0:
            logger.info(
                f"Completed {server.name} in {result.duration:.1f}s - "
                f"Processed {result.compressed} files"
            )
        elif not result.error:
            logger.info(f"No files to process in {server.name}")
        return result

    def _process_server(self, server: ServerEntry, result: ServerResult):
        if self.debug:
            log_scan_diagnostics(server.source, self.extensions)

        self.metrics.start_operation(f"{server.name}:scan")
        files = scan_files(server.source, self.extensions)
        self.metrics.end_operation(f"{server.name}:scan", files_found=len(files))
        result.discovered = len(files)
        if not files:
            return

        if not os.path.isdir(server.destination):
            logger.info(f"Creating destination directory: {server.destination}")
            os.makedirs(server.destination, exist_ok=True)

        tasks = self._plan_tasks(server, files, result)
        logger.info(
            f"{server.name}: {result.discovered} files found, "
            f"{result.already_processed} already processed, "
            f"{result.reconciled} already compressed, {len(tasks)} to compress"
        )

        if tasks:
            self.metrics.start_operation(f"{server.name}:compress")
            self._compress_tasks(server, tasks, result)
            self.metrics.end_operation(
                f"{server.name}:compress",
                files_compressed=result.compressed,
                files_failed=result.failed,
                workers=self.max_workers,
            )

        if result.changed:
            self.checkpoint()

    def _plan_tasks(self, server: ServerEntry, files: List[str], result: ServerResult):
        """Split discovered files into already handled ones and compression tasks."""
        tasks = []
        for source_path in files:
            relative_path = relative_of(source_path, server.source)
            if not is_contained_relative_path(relative_path):
                result.unresolved += 1
                logger.warning(
                    f"Cannot resolve {source_path} relative to {server.source}, skipping"
                )
                continue

            key = make_processed_key(server.name, relative_path)
            if key in self.processed:
                result.already_processed += 1
                continue

            destination_path = compressed_destination(
                server.destination, relative_path, COMPRESSED_SUFFIX
            )
            if os.path.exists(destination_path):
                # Output survived but the list lost the entry
                logger.debug(f"Compressed file already exists: {destination_path}")
                self.processed.add(key)
                result.reconciled += 1
                continue

            tasks.append(CompressionTask(source_path, destination_path, relative_path, key))

        result.queued = len(tasks)
        return tasks

    def _compress_tasks(self, server: ServerEntry, tasks: List[CompressionTask], result):
        total = len(tasks)
        batches = [tasks[i : i + self.batch_size] for i in range(0, total, self.batch_size)]
        workers = min(self.max_workers, self.batch_size)
        logger.info(
            f"Processing {total} files for {server.name} in {len(batches)} batches "
            f"with {workers} workers"
        )

        started = time.time()
        done = 0
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="fastdl") as executor:
            for index, batch in enumerate(batches, start=1):
                if self.stop_event.is_set():
                    logger.info(
                        f"Shutdown requested, leaving {total - done} files of {server.name} "
                        "for the next run"
                    )
                    break

                future_to_task = {executor.submit(self._run_task, task): task for task in batch}
                for future in as_completed(future_to_task):
                    task = future_to_task[future]
                    try:
                        outcome = future.result()
                    except Exception as e:
                        logger.error(f"Task failed for {task.relative_path}: {e}")
                        outcome = TaskOutcome.FAILED

                    if outcome is TaskOutcome.COMPRESSED:
                        result.compressed += 1
                    elif outcome is TaskOutcome.BUSY:
                        result.busy += 1
                    else:
                        result.failed += 1

                done += len(batch)
                self._report_progress(done, total, started, result)

                if index % self.checkpoint_every_batches == 0 and index < len(batches):
                    self.checkpoint()

        if result.failed:
            logger.warning(
                f"{server.name}: {result.failed} of {total} files failed, will retry next cycle"
            )
        if result.busy:
            logger.info(f"{server.name}: {result.busy} files in use or growing, will retry next cycle")

    def _run_task(self, task: CompressionTask) -> TaskOutcome:
        """Worker body: liveness check, compress, record."""
        if is_file_in_use(task.source_path) or is_file_growing(
            task.source_path, self.growth_check_interval
        ):
            logger.debug(f"File in use or growing, skipping: {task.source_path}")
            return TaskOutcome.BUSY

        logger.debug(f"Compressing: {task.source_path} -> {task.destination_path}")
        if not self.backend.compress(task.source_path, task.destination_path):
            logger.error(f"Failed to compress {task.relative_path}")
            return TaskOutcome.FAILED

        self.processed.add(task.processed_key)
        return TaskOutcome.COMPRESSED

    @staticmethod
    def _report_progress(done, total, started, result):
        elapsed = time.time() - started
        rate = done / elapsed if elapsed > 0 else 0.0
        remaining = (total - done) / rate if rate > 0 else 0.0
        log_progress(
            (done / total) * 100,
            done,
            total,
            f"{rate:.1f} files/sec, ETA {format_time(remaining)}, {result.failed} failed",
        )
