#!/usr/bin/env python3
"""
Source Engine FastDL Watcher (fastdl_tool.py)

Entry point: loads the config, picks a compression backend and runs the
processing loop once or continuously.
"""

import os
import sys
import time
from datetime import datetime

# Third-party libraries - ensure these are installed
try:
    from dotenv import load_dotenv
except ImportError as e:
    print(f"Error: A required library is missing: {e}. Please install the project dependencies.")
    sys.exit(1)

from fastdl.cache_manager import load_processed_files
from fastdl.cli import parse_arguments, resolve_run_once
from fastdl.compression import CompressionUnavailableError, detect_available_backends, select_backend
from fastdl.config import APP_NAME, VERSION
from fastdl.config_validator import ConfigLoader
from fastdl.logger import format_time, log_error, log_step, logger, setup_logger
from fastdl.processor import FastDLProcessor
from fastdl.scheduler import Scheduler


def log_configuration(config, config_path, debug):
    """Log the effective configuration in a clean format."""
    logger.info("CONFIGURATION:")
    logger.info(f"Config File:          {config_path}")
    logger.info(f"Check Interval:       {config.check_interval} seconds")
    logger.info(f"24x7 Mode:            {config.run_24x7}")
    logger.info(f"Debug Logs:           {debug}")
    logger.info(f"Processed Files Path: {config.processed_files_path}")
    logger.info(f"File Types:           {', '.join(sorted(config.extensions))}")
    logger.info(f"Parallel Workers:     {config.workers}")
    logger.info(f"Loaded {len(config.servers)} server configurations")
    for server in config.servers:
        logger.info(f"Server:               {server.name}")
        logger.info(f"  Source:             {server.source}")
        logger.info(f"  Destination:        {server.destination}")


def log_backends(backend):
    availability = detect_available_backends()
    logger.info(f"Compression Backend:  {backend.describe()}")
    for kind, available in availability.items():
        logger.debug(f"  {kind.value}: {'available' if available else 'not found'}")


def main(argv=None):
    """Main execution function. Returns the process exit code."""
    # Load environment variables from .env file if it exists
    load_dotenv(override=True)
    start_time = time.time()

    args = parse_arguments(argv)
    config = ConfigLoader.load(args.config)
    debug = args.debug or config.debug_logs

    setup_logger(debug=debug, log_file=config.log_file or None)
    log_step(
        f"{APP_NAME.upper()} v{VERSION}\n"
        f"Started at: {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}"
    )
    log_configuration(config, args.config, debug)

    if not config.servers:
        logger.warning(f"No servers configured in {args.config}; nothing will be processed")

    try:
        backend = select_backend(
            level=config.compression_level, timeout=config.compression_timeout
        )
    except CompressionUnavailableError as e:
        log_error(f"Failed to initialize compression tools: {e}")
        return 1
    log_backends(backend)

    processed = load_processed_files(config.processed_files_path)
    logger.info(f"Loaded {len(processed)} processed file entries")

    processor = FastDLProcessor.from_config(config, backend, processed, debug=debug)
    scheduler = Scheduler(processor, config.servers, config.check_interval)
    scheduler.install_signal_handlers()

    if resolve_run_once(args, config):
        scheduler.run_once()
    else:
        scheduler.run_forever()

    logger.info(f"Total Time: {format_time(time.time() - start_time)}")
    return 0


def run():
    try:
        sys.exit(main())

    except KeyboardInterrupt:
        log_error("Interrupted by user (Ctrl+C)")
        sys.exit(130)  # Standard exit code for SIGINT

    except PermissionError as e:
        log_error(f"Permission denied: {e}")
        log_error("Please check file permissions or run as administrator")
        sys.exit(1)

    except Exception as e:
        log_error(f"Unexpected error occurred: {str(e)}")
        log_error(f"Error type: {type(e).__name__}")

        import traceback

        log_error("Full traceback:")
        for line in traceback.format_exc().split("\n"):
            if line.strip():
                log_error(f"  {line}")
        sys.exit(1)

    finally:
        sys.stdout.flush()
        sys.stderr.flush()


if __name__ == "__main__":
    # Enable ANSI colors on Windows
    if os.name == "nt":
        os.system("color")
    run()
