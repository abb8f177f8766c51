"""Main CLI entry point for the WaterCrawl client."""

import sys
from pathlib import Path
from typing import Optional

import click
from rich.traceback import install

from ..foundation.config import get_config_manager
from ..foundation.logging import setup_logging
from ..foundation.errors import WaterCrawlError
from ..version import __version__
from .commands import scrape, requests, config
from .commands.common import console

# Install rich traceback handler
install(show_locals=False)


def setup_cli_logging(verbose: int, quiet: bool, use_colors: bool) -> None:
    """Setup logging based on verbosity level.

    With no flags the configured ``logging.level`` applies.

    Args:
        verbose: Verbosity level (0-3)
        quiet: Only log errors
        use_colors: Whether to color console output
    """
    if quiet:
        level = "ERROR"
    elif verbose:
        level = "INFO" if verbose == 1 else "DEBUG"
    else:
        level = None
    setup_logging(level=level, use_colors=use_colors)


def handle_cli_error(error: Exception, debug: bool = False) -> int:
    """Handle CLI errors with appropriate formatting.

    Args:
        error: Exception that occurred
        debug: Whether to show debug information

    Returns:
        Exit code
    """
    if isinstance(error, WaterCrawlError):
        console.print(f"[red]Error:[/red] {str(error)}", style="red")
        if error.details:
            console.print(f"Details: {error.details}")
        return 1
    elif isinstance(error, click.ClickException):
        error.show()
        return error.exit_code
    else:
        if debug:
            console.print_exception()
        else:
            console.print(f"[red]Unexpected error:[/red] {str(error)}", style="red")
            console.print("Use --verbose for more details")
        return 1


@click.group()
@click.option(
    "--config",
    "-c",
    type=click.Path(),
    help="Configuration file path"
)
@click.option(
    "--verbose",
    "-v",
    count=True,
    help="Increase verbosity (use -v, -vv)"
)
@click.option(
    "--quiet",
    "-q",
    is_flag=True,
    help="Suppress output except errors"
)
@click.option(
    "--no-color",
    is_flag=True,
    help="Disable colored output"
)
@click.option(
    "--api-key",
    help="API key (overrides api.api_key and WATERCRAWL_API_KEY)"
)
@click.option(
    "--base-url",
    help="API base URL (overrides api.base_url and WATERCRAWL_BASE_URL)"
)
@click.version_option(version=__version__, prog_name="watercrawl")
@click.pass_context
def cli(ctx, config, verbose, quiet, no_color, api_key, base_url):
    """WaterCrawl - crawl and scrape the web through the WaterCrawl API.

    Examples:

        # Scrape a page and wait for the result
        watercrawl scrape https://example.com

        # List crawl requests
        watercrawl requests list

        # Follow a crawl request as it runs
        watercrawl requests monitor <uuid>

        # Show the active configuration
        watercrawl config show
    """
    ctx.ensure_object(dict)

    if quiet:
        verbose = 0

    config_manager = get_config_manager()
    if config:
        config_manager.config_path = Path(config)
    config_manager.load_hierarchical()

    setup_cli_logging(verbose, quiet, use_colors=not no_color)

    ctx.obj['verbose'] = verbose
    ctx.obj['quiet'] = quiet
    ctx.obj['no_color'] = no_color
    ctx.obj['config_path'] = config
    ctx.obj['api_key'] = api_key
    ctx.obj['base_url'] = base_url

    if no_color:
        console.no_color = True


cli.add_command(scrape)
cli.add_command(requests)
cli.add_command(config)


def main(args: Optional[list] = None, standalone_mode: bool = True) -> int:
    """Main entry point for the CLI.

    Args:
        args: Command line arguments (defaults to sys.argv)
        standalone_mode: Whether to run in standalone mode

    Returns:
        Exit code
    """
    try:
        if args is None:
            args = sys.argv[1:]

        result = cli(args, standalone_mode=standalone_mode)
        return result if isinstance(result, int) else 0

    except KeyboardInterrupt:
        console.print("\n[yellow]Operation cancelled by user.[/yellow]")
        return 130
    except Exception as e:
        debug = any(arg in ("--verbose", "-v", "-vv") for arg in (args or []))
        return handle_cli_error(e, debug)


if __name__ == "__main__":
    sys.exit(main())
