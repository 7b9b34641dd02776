"""
Command-line argument parsing for fastdl.
"""

import argparse
import os

from .config import APP_NAME, DEFAULT_CONFIG_PATH, VERSION


def _get_env_bool(key: str) -> bool:
    """Get boolean value from environment variable."""
    return os.environ.get(key, "").lower() in ("true", "yes", "1")


def build_parser():
    parser = argparse.ArgumentParser(
        prog="fastdl_tool",
        description="Compress Source engine server content into a FastDL mirror.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        allow_abbrev=False,
        epilog="""
Environment Variables:
  FASTDL_CONFIG           Path to the JSON config file (default: config.json)
  FASTDL_ONCE             Process once and exit (true/false)
  FASTDL_DEBUG            Enable debug logging (true/false)

Examples:
  # Process every configured server once
  python fastdl_tool.py --once

  # Watch continuously with a custom config
  python fastdl_tool.py --config /etc/fastdl/config.json --24x7
        """,
    )

    parser.add_argument(
        "-v", "--version", action="version", version=f"{APP_NAME} v{VERSION}"
    )
    parser.add_argument(
        "--config",
        metavar="PATH",
        default=os.environ.get("FASTDL_CONFIG", DEFAULT_CONFIG_PATH),
        help="Path to the JSON config file (env: FASTDL_CONFIG, default: config.json)",
    )

    mode_group = parser.add_argument_group("Run Mode")
    mode_group.add_argument(
        "--once",
        action="store_true",
        default=_get_env_bool("FASTDL_ONCE"),
        help="Process all servers once and exit (env: FASTDL_ONCE)",
    )
    mode_group.add_argument(
        "--24x7",
        dest="run_24x7",
        action="store_true",
        help="Keep watching on the configured interval, overriding Run24x7 in the config",
    )
    mode_group.add_argument(
        "--debug",
        action="store_true",
        default=_get_env_bool("FASTDL_DEBUG"),
        help="Enable debug logging (env: FASTDL_DEBUG)",
    )
    return parser


def parse_arguments(argv=None):
    """Parse command-line arguments. Unknown flags exit with a usage error."""
    return build_parser().parse_args(argv)


def resolve_run_once(args, config) -> bool:
    """--once wins over --24x7, which wins over the config file."""
    if args.once:
        return True
    if args.run_24x7:
        return False
    return not config.run_24x7
