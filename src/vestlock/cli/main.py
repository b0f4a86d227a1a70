"""
Main CLI entry point for vestlock.
"""

import logging
import sys

from vestlock.cli.vesting_commands import cli

logger = logging.getLogger(__name__)


def main():
    """Main CLI entry point"""
    logger.debug("Starting vestlock CLI")
    return cli(obj={})


if __name__ == "__main__":
    sys.exit(main() or 0)
