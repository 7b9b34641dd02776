"""
Logging utilities and colored console output for fastdl.
"""

import logging
import os
import sys

LOGGER_NAME = "fastdl"


class ColoredFormatter(logging.Formatter):
    """Custom formatter with color support for different log levels"""

    # ANSI color codes
    COLORS = {
        "DEBUG": "\033[36m",  # Cyan
        "INFO": "\033[32m",  # Green
        "WARNING": "\033[33m",  # Yellow
        "ERROR": "\033[31m",  # Red
        "CRITICAL": "\033[41m",  # Red background
        "RESET": "\033[0m",  # Reset to default
    }

    CONFIG_PREFIXES = (
        "CONFIGURATION:",
        "Check Interval:",
        "24x7 Mode:",
        "Debug Logs:",
        "Processed Files Path:",
        "File Types:",
        "Compression Backend:",
        "Parallel Workers:",
        "Server:",
    )

    def format(self, record):
        message = record.getMessage()
        reset = self.COLORS["RESET"]

        if record.levelno >= logging.ERROR:
            prefix = "ERROR"
            color = self.COLORS["ERROR"]
        elif record.levelno == logging.WARNING:
            prefix = "WARNING"
            color = self.COLORS["WARNING"]
        elif record.levelno == logging.DEBUG:
            prefix = "DEBUG"
            color = self.COLORS["DEBUG"]
        elif message.lstrip("\n").startswith(("=", "CYCLE ", "SHUTDOWN")) or "FASTDL" in message:
            prefix = "EXECUTE"
            color = "\033[35m"  # Purple for execution steps
        elif message.startswith("Progress:") or message.startswith("Processing"):
            prefix = "PROGRESS"
            color = "\033[34m"  # Blue for progress
        elif message.startswith(self.CONFIG_PREFIXES):
            prefix = "CONFIG"
            color = self.COLORS["DEBUG"]
        elif "completed" in message.lower() or "compressed" in message.lower():
            prefix = "SUCCESS"
            color = self.COLORS["INFO"]
        else:
            prefix = "INFO"
            color = "\033[37m"  # White for general info

        formatted_message = f"{color}[{prefix}]{reset} {message}"
        if record.exc_info:
            formatted_message += "\n" + self.formatException(record.exc_info)
        return formatted_message


def setup_logger(debug=False, log_file=None):
    """
    Set up and configure the fastdl logger.

    Safe to call more than once: existing handlers are replaced, so the
    entry point can reconfigure the import-time console logger once the
    config file has been read.
    """
    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(logging.DEBUG if debug else logging.INFO)
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    if log_file:
        log_dir = os.path.dirname(os.path.abspath(log_file))
        os.makedirs(log_dir, exist_ok=True)
        file_handler = logging.FileHandler(log_file, mode="a", encoding="utf-8")
        file_handler.setFormatter(logging.Formatter("%(asctime)s - %(levelname)s - %(message)s"))
        logger.addHandler(file_handler)

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(ColoredFormatter())
    logger.addHandler(console_handler)

    if hasattr(sys.stdout, "reconfigure"):
        sys.stdout.reconfigure(line_buffering=True)

    return logger


# Console-only until the entry point knows the log file and debug flag
logger = setup_logger()


def log_step(message):
    """Log a major processing step with visual separation"""
    logger.info(f"\n{'='*70}\n{message}\n{'='*70}")


def log_progress(percentage, count=None, total=None, extra_info=None):
    """Log a progress update in a standardized format"""
    if count is not None and total is not None:
        progress_msg = f"Progress: {percentage:.1f}% ({count}/{total})"
    else:
        progress_msg = f"Progress: {percentage:.1f}%"

    if extra_info:
        progress_msg += f" - {extra_info}"

    logger.info(progress_msg)


def log_error(message):
    """Log an error message with proper formatting"""
    logger.error(message)


def format_time(seconds):
    """Format time duration in a human-readable format."""
    if seconds < 60:
        return f"{seconds:.2f} seconds"
    elif seconds < 3600:
        minutes = seconds // 60
        remaining_seconds = seconds % 60
        return f"{int(minutes)} minutes {int(remaining_seconds)} seconds"
    else:
        hours = seconds // 3600
        minutes = (seconds % 3600) // 60
        remaining_seconds = seconds % 60
        return f"{int(hours)} hours {int(minutes)} minutes {int(remaining_seconds)} seconds"
