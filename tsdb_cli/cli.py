#!/usr/bin/env python3
# PYTHON_ARGCOMPLETE_OK
# --------------------
# imports
# --------------------
import argparse
import sys
import logging
from getpass import getpass
from typing import Any, Dict, List, Optional
import argcomplete
from argcomplete.completers import ChoicesCompleter

from tsdb_cli import __version__, CLI_EPILOG, TSDBClient
from tsdb_cli.commands import (
    COMMANDS,
    PROG,
    AppContext,
    Dispatcher,
)
from tsdb_cli.config import DEFAULT_CONFIG_FILE, SCHEMES
from tsdb_cli.table import OUTPUT_FORMATS

# --- Logging Setup ---
logging.basicConfig(
    level=logging.WARNING, format="%(levelname)s: %(message)s", stream=sys.stderr
)
logger = logging.getLogger(__name__)
# ---------------------


def detect_scheme_in_host(host_str):
    """
    Detect if the host string already includes a URL scheme (http:// or https://).
    Returns a tuple of (scheme, actual_host) if scheme is detected, or (None, host_str) if not.
    """
    if not host_str:
        return (None, host_str)
    if host_str.startswith("http://"):
        return ("http", host_str[7:])  # Remove "http://" prefix
    elif host_str.startswith("https://"):
        return ("https", host_str[8:])  # Remove "https://" prefix
    return (None, host_str)  # No scheme detected in host string


def _add_parser_global(parser: argparse.ArgumentParser):
    """Adds global arguments to the main parser."""
    parser.add_argument(
        "--version", action="version", version=f"%(prog)s {__version__}"
    )
    parser.add_argument(
        "-c",
        "--config",
        default=None,
        help=f"Path to the config JSON file (default: {DEFAULT_CONFIG_FILE}).",
    )
    parser.add_argument(
        "-H", "--host", default=None, help="Database server host (overrides config)."
    )
    parser.add_argument(
        "--port",
        type=int,
        default=None,
        help=f"HTTP API port (overrides config, usually {TSDBClient.DEFAULT_PORT}).",
    )
    parser.add_argument(
        "-u", "--user", default=None, help="Username for basic authentication."
    )
    parser.add_argument(
        "-p",
        "--password",
        default=None,
        help="Password for basic authentication. If -u is given but -p is not, will prompt securely.",
    )
    parser.add_argument(
        "-d", "--database", default=None, help="Database name (overrides config)."
    )
    parser.add_argument(
        "--timeout", type=int, default=None, help="Request timeout in seconds."
    )
    parser.add_argument(
        "--scheme",
        default=None,
        choices=list(SCHEMES),
        help="Connection scheme (http or https).",
    )
    parser.add_argument(
        "-F",
        "--format",
        default="plain",
        choices=OUTPUT_FORMATS,
        help="Output format for query results (default: plain).",
    )
    log_level_group = parser.add_mutually_exclusive_group()
    log_level_group.add_argument(
        "-i",
        "--info",
        action="store_true",
        help="Use info level logging (default is WARNING).",
    )
    log_level_group.add_argument(
        "-D",
        "--debug",
        action="store_true",
        help="Enable debug level logging to stderr.",
    )


def build_parser():
    """Builds the argument parser."""
    parser = argparse.ArgumentParser(
        prog=PROG,
        description="Command line client for a time-series database (InfluxDB HTTP API).\nLogs to stderr, outputs data to stdout.",
        formatter_class=argparse.RawTextHelpFormatter,
        add_help=False,
        epilog=CLI_EPILOG,
    )
    parser.add_argument(
        "-h",
        "--help",
        action="help",
        default=argparse.SUPPRESS,
        help="Show this help message and exit.",
    )
    _add_parser_global(parser)
    # The dispatcher owns command lookup and argument validation, so the
    # parser only splits the command name from its raw arguments.
    command_arg = parser.add_argument(
        "command",
        metavar="COMMAND",
        help=f"One of: {', '.join(COMMANDS)}.",
    )
    command_arg.completer = ChoicesCompleter(list(COMMANDS))
    parser.add_argument(
        "args",
        nargs=argparse.REMAINDER,
        metavar="ARGS",
        help="Arguments of the command.",
    )
    return parser


def setup_logging(args: argparse.Namespace) -> int:
    """Sets the level of the CLI and library loggers from -i/-D."""
    log_level = logging.WARNING
    if args.info:
        log_level = logging.INFO
    elif args.debug:
        log_level = logging.DEBUG
    logger.setLevel(log_level)
    # Configure logging for the tsdb_cli library as well
    library_logger = logging.getLogger("tsdb_cli")
    library_logger.setLevel(log_level)
    if log_level == logging.DEBUG:
        logger.debug("Debug logging enabled for CLI and library.")
    return log_level


def resolve_overrides(args: argparse.Namespace) -> Dict[str, Any]:
    """Collects the connection settings given on the command line."""
    scheme = args.scheme
    host = args.host
    if host:
        detected_scheme, host = detect_scheme_in_host(host)
        if detected_scheme:
            logger.debug(
                f"Detected scheme '{detected_scheme}://' in host parameter: '{args.host}'"
            )
            # --scheme wins over a scheme embedded in the host
            if scheme is None:
                scheme = detected_scheme

    password = args.password
    if args.user and password is None and COMMANDS.get(args.command) is not None:
        if COMMANDS[args.command].requires_client:
            password = getpass(f"Password for user '{args.user}': ")

    return {
        "host": host,
        "port": args.port,
        "user": args.user,
        "password": password,
        "database": args.database,
        "timeout": args.timeout,
        "scheme": scheme,
    }


def main(argv: Optional[List[str]] = None):
    """Main entry point for the CLI."""
    parser = build_parser()
    # --- Enable argcomplete ---
    # Call this *before* parsing arguments
    argcomplete.autocomplete(parser)
    args = parser.parse_args(argv)
    setup_logging(args)

    try:
        overrides = resolve_overrides(args)
    except (EOFError, KeyboardInterrupt):
        logger.info("\nOperation cancelled during password input.")
        sys.exit(130)

    ctx = AppContext(
        config_path=args.config,
        overrides=overrides,
        output_format=args.format,
    )
    dispatcher = Dispatcher(ctx, prog=parser.prog)
    try:
        status = dispatcher.run(args.command, args.args)
    except KeyboardInterrupt:
        logger.info("\nOperation cancelled by user.")
        sys.exit(130)
    except Exception as e:
        # Catch-all for unexpected errors in command handlers
        logger.exception(
            f"An unexpected error occurred during command '{args.command}': {e}"
        )
        sys.exit(1)
    sys.exit(status)


if __name__ == "__main__":
    main()
