"""CLI entry point.

Without arguments the interactive REPL starts; with arguments a single command
runs, e.g. ``lmsvideo-cli upload lecture.mp4 8``.
"""

import os
import shlex
import sys
from typing import List, Optional

from common.logging_config import setup_logging
from cli.parser import ParseError, parse_command
from cli.repl import dispatch_command, repl_loop

FAILURE_PREFIXES = ("Error", "Upload failed", "Cleanup failed", "Server unhealthy")


def run_once(args: List[str]) -> int:
    """
    Run one command given as argv tokens.

    Returns:
        Process exit code
    """
    try:
        cmd_obj = parse_command(shlex.join(args))
    except ParseError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 2

    result = dispatch_command(cmd_obj)
    print(result)
    return 1 if result.startswith(FAILURE_PREFIXES) else 0


def main(argv: Optional[List[str]] = None) -> int:
    """Entry point for CLI."""
    args = list(sys.argv[1:] if argv is None else argv)
    debug = '--debug' in args
    if debug:
        args.remove('--debug')

    log_level = 'DEBUG' if debug else os.getenv('LOG_LEVEL', 'WARNING')
    logger = setup_logging('cli', log_level=log_level)
    if debug:
        logger.info("Debug logging enabled")

    logger.info("CLI starting...")
    try:
        if args:
            return run_once(args)
        repl_loop()
        return 0
    except Exception as e:
        logger.error(f"CLI error: {e}", exc_info=True)
        raise
    finally:
        logger.info("CLI exiting")


if __name__ == "__main__":
    sys.exit(main())
