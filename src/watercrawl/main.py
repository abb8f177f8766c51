"""Main entry point for the WaterCrawl command line client."""

import sys
from typing import Optional

from .cli.main import main as cli_main


def main(args: Optional[list] = None) -> int:
    """Main entry point for the watercrawl application.

    Args:
        args: Command line arguments (defaults to sys.argv)

    Returns:
        Exit code (0 for success, non-zero for failure)
    """
    return cli_main(args)


def run() -> None:
    """Console script entry point."""
    sys.exit(main())


if __name__ == "__main__":
    run()
