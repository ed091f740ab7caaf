#!/usr/bin/env python3
"""zz - terminal client for a codex app-server backend.

Usage:
    zz                      # interactive REPL
    zz "explain this repo"  # single query, then exit
    zz --setup              # (re)run the setup wizard
    zz --debug              # run a fixed multi-step prompt with debug tags

Environment Variables:
    ZZ_LOG_FILE: Log file path (default: zz.log in the temp directory;
        an empty value disables logging)
"""

import argparse
import asyncio
import logging
import os
import shutil
import sys
import tempfile
from typing import List, Optional

from dotenv import load_dotenv

from zz import __version__, ui
from zz.config import CONFIG_PATH, Config, load_config
from zz.runner import run_debug, run_repl, run_single_shot
from zz.setup_wizard import create_config
from zz.transport import DEFAULT_CODEX_BIN

logger = logging.getLogger("zz")

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


def resolve_log_path(env_var: str = "ZZ_LOG_FILE", default_filename: str = "zz.log") -> Optional[str]:
    """Log file path from ``env_var``; empty disables, unset falls back to the temp dir."""
    value = os.environ.get(env_var)
    if value == "":
        return None
    if value:
        return value
    return os.path.join(tempfile.gettempdir(), default_filename)


def configure_logging(verbose: bool = False) -> None:
    """Send log records to a file; the terminal belongs to the UI."""
    level = logging.DEBUG if verbose else logging.INFO
    path = resolve_log_path()
    if path is None:
        logging.basicConfig(level=level, handlers=[logging.NullHandler()])
        return
    os.makedirs(os.path.dirname(os.path.abspath(path)), exist_ok=True)
    logging.basicConfig(level=level, format=LOG_FORMAT, filename=path)


def codex_binary_exists(codex_bin: Optional[str]) -> bool:
    return shutil.which(codex_bin or DEFAULT_CODEX_BIN) is not None


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="zz",
        description="zz - terminal client for a codex app-server backend",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=f"""
Examples:
  # Interactive session
  zz

  # One question, then exit
  zz how do I run the tests here

Config file: {CONFIG_PATH}
        """,
    )
    parser.add_argument(
        "query",
        nargs="*",
        help="Query to answer in single-shot mode (omit for the REPL)",
    )
    parser.add_argument(
        "--setup",
        action="store_true",
        help="Run the setup wizard and exit",
    )
    parser.add_argument(
        "--debug",
        action="store_true",
        help="Run a fixed multi-step prompt with response/command tags",
    )
    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Verbose (DEBUG) logging to the log file",
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {__version__}",
    )
    return parser


async def _main(args: argparse.Namespace) -> int:
    if args.setup:
        ui.console.print("Running setup wizard...\n")
        await create_config()
        return 0

    config: Optional[Config] = load_config()
    if config is None:
        ui.console.print("No configuration found. Running setup wizard...\n")
        await create_config()
        ui.console.print("\nSetup complete. Run zz again to start.\n")
        return 0

    if not codex_binary_exists(config.codex_bin):
        bin_name = config.codex_bin or DEFAULT_CODEX_BIN
        ui.print_error(
            f'codex binary not found: "{bin_name}". '
            "Install the codex CLI or set codexBin in config."
        )
        return 1

    if args.debug:
        return await run_debug(config)

    query = " ".join(args.query).strip()
    if query:
        return await run_single_shot(config, query)
    return await run_repl(config)


def main(argv: Optional[List[str]] = None) -> None:
    args = build_parser().parse_args(argv)

    load_dotenv()
    configure_logging(args.verbose)
    logger.info("zz %s starting", __version__)

    try:
        status = asyncio.run(_main(args))
    except KeyboardInterrupt:
        status = 130
    except Exception as e:
        logger.exception("Fatal error")
        ui.print_error(f"error: {e}")
        status = 1
    sys.exit(status)


if __name__ == "__main__":
    main()
