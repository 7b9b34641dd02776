"""
Scheduling loop: run the processor once, or forever on a fixed interval.
"""

import enum
import signal
import threading
from datetime import datetime
from typing import List, Optional

from .config import ERROR_COOLDOWN_SECONDS, QUIET_CYCLE_LOG_EVERY
from .config_validator import ServerEntry
from .logger import log_step, logger
from .processor import CycleResult, FastDLProcessor


class SchedulerState(enum.Enum):
    IDLE = "idle"
    RUNNING_CYCLE = "running"
    SLEEPING = "sleeping"
    SHUTTING_DOWN = "shutting down"


class Scheduler:
    """Drives FastDLProcessor cycles and handles graceful shutdown."""

    def __init__(
        self,
        processor: FastDLProcessor,
        servers: List[ServerEntry],
        check_interval: float,
        error_cooldown: float = ERROR_COOLDOWN_SECONDS,
    ):
        self.processor = processor
        self.servers = list(servers)
        self.check_interval = check_interval
        self.error_cooldown = error_cooldown
        self.shutdown_event = processor.stop_event
        self.state = SchedulerState.IDLE
        self.cycles = 0
        self.empty_cycles = 0

    def request_shutdown(self):
        self.shutdown_event.set()

    def install_signal_handlers(self):
        """Route SIGINT/SIGTERM to a graceful shutdown. Main thread only."""

        def _handler(signum, frame):
            logger.warning(f"Received signal {signum}, shutting down after the current batch...")
            self.request_shutdown()

        signal.signal(signal.SIGINT, _handler)
        if hasattr(signal, "SIGTERM"):
            signal.signal(signal.SIGTERM, _handler)

    def save_state(self, reason: str) -> bool:
        saved = self.processor.checkpoint()
        if saved:
            logger.info(
                f"Saved processed files list ({reason}) to: {self.processor.processed_files_path}"
            )
        return saved

    def run_cycle(self) -> CycleResult:
        """One pass over every configured server."""
        self.state = SchedulerState.RUNNING_CYCLE
        self.cycles += 1
        logger.info(f"CYCLE {self.cycles} started at {datetime.now():%Y-%m-%d %H:%M:%S}")

        result = self.processor.process_all(self.servers)
        if result.changed:
            self.save_state("end of cycle")
        return result

    def run_once(self) -> Optional[CycleResult]:
        """Process every server once and stop."""
        logger.info("Mode: Process once and exit")
        result = None
        try:
            result = self.run_cycle()
            if not result.changed:
                logger.info("No new files found in any server.")
        except Exception as e:
            logger.error(f"Error during processing: {e}", exc_info=True)
        finally:
            self._shutdown()
        return result

    def run_forever(self):
        """Cycle, sleep, repeat until shutdown is requested."""
        logger.info("Mode: 24x7 continuous monitoring (Press Ctrl+C to stop)")
        while not self.shutdown_event.is_set():
            try:
                result = self.run_cycle()
                self._log_cycle_outcome(result)
                wait = self.check_interval
            except Exception as e:
                logger.error(f"Error in processing loop: {e}", exc_info=True)
                self.save_state("error recovery")
                logger.info(f"Restarting loop in {self.error_cooldown} seconds...")
                wait = self.error_cooldown

            if self.shutdown_event.is_set():
                break
            logger.info(f"Waiting {wait} seconds before next check...")
            self.sleep(wait)

        self._shutdown()

    def sleep(self, seconds: float) -> bool:
        """
        Wait up to seconds in one-second steps.
        Returns True if shutdown was requested while waiting.
        """
        self.state = SchedulerState.SLEEPING
        remaining = seconds
        while remaining > 0:
            if self.shutdown_event.wait(min(1.0, remaining)):
                return True
            remaining -= 1.0
        return self.shutdown_event.is_set()

    def _log_cycle_outcome(self, result: CycleResult):
        if result.changed:
            self.empty_cycles = 0
            return
        self.empty_cycles += 1
        if self.empty_cycles % QUIET_CYCLE_LOG_EVERY == 1:
            logger.info(f"No new files found. (Cycle {self.empty_cycles} without changes)")

    def _shutdown(self):
        self.state = SchedulerState.SHUTTING_DOWN
        try:
            self.save_state("shutdown")
        except Exception as e:
            logger.error(f"Could not save state during shutdown: {e}")
        log_step(f"SHUTDOWN COMPLETE after {self.cycles} cycle(s)")
