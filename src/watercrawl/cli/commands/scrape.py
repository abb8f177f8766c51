"""CLI command for scrape-and-wait."""

import asyncio
from typing import Any, Dict, Optional

import click
from rich.progress import Progress, SpinnerColumn, TextColumn
from rich.table import Table

from ...foundation.errors import WaterCrawlError, handle_error
from ...models.outcome import Failed, Outcome
from .common import (
    console, logger, make_client, parse_json_option,
    install_interrupt_handler, remove_interrupt_handler, write_json
)


@click.command()
@click.argument("urls", nargs=-1, required=True)
@click.option(
    "--page-options",
    help="Page options as a JSON object"
)
@click.option(
    "--plugin-options",
    help="Plugin options as a JSON object"
)
@click.option(
    "--no-wait",
    is_flag=True,
    help="Return as soon as the crawl request is created"
)
@click.option(
    "--no-download",
    is_flag=True,
    help="Do not download the accumulated result on completion"
)
@click.option(
    "--timeout",
    type=float,
    help="Stop waiting after this many seconds"
)
@click.option(
    "--output",
    "-o",
    type=click.Path(),
    help="Output file path"
)
@click.pass_context
def scrape(ctx, urls, page_options, plugin_options, no_wait, no_download, timeout, output):
    """Scrape one or more URLs and wait for the result.

    Examples:

        # Scrape a single page
        watercrawl scrape https://example.com

        # Only submit the crawl request
        watercrawl scrape https://example.com --no-wait

        # Pass page options and save the result
        watercrawl scrape https://example.com --page-options '{"wait_time": 1000}' -o result.json
    """
    verbose = ctx.obj.get('verbose', 0) if ctx.obj else 0
    quiet = ctx.obj.get('quiet', False) if ctx.obj else False

    page_opts = parse_json_option(page_options, "--page-options")
    plugin_opts = parse_json_option(plugin_options, "--plugin-options")
    target = urls[0] if len(urls) == 1 else list(urls)

    try:
        outcome = asyncio.run(_run_scrape(
            ctx,
            target,
            page_options=page_opts,
            plugin_options=plugin_opts,
            wait_for_completion=False if no_wait else None,
            download_result=False if no_download else None,
            timeout=timeout,
            quiet=quiet
        ))
    except WaterCrawlError as e:
        handle_error(e)
        if verbose > 0:
            console.print_exception()
        console.print(f"[red]Error:[/red] {str(e)}")
        ctx.exit(1)

    _handle_output(outcome, output, quiet)
    if isinstance(outcome, Failed):
        ctx.exit(1)


async def _run_scrape(
    ctx: click.Context,
    target: Any,
    page_options: Optional[Dict[str, Any]],
    plugin_options: Optional[Dict[str, Any]],
    wait_for_completion: Optional[bool],
    download_result: Optional[bool],
    timeout: Optional[float],
    quiet: bool
) -> Outcome:
    cancel_event = asyncio.Event()
    interruptible = install_interrupt_handler(cancel_event)

    try:
        async with make_client(ctx) as client:
            if quiet:
                return await client.scrape_url(
                    target,
                    page_options=page_options,
                    plugin_options=plugin_options,
                    wait_for_completion=wait_for_completion,
                    download_result=download_result,
                    cancel_event=cancel_event,
                    timeout=timeout,
                )

            with Progress(
                SpinnerColumn(),
                TextColumn("[progress.description]{task.description}"),
                console=console,
                transient=True
            ) as progress:
                task = progress.add_task(f"Scraping {_describe(target)}...", total=None)
                outcome = await client.scrape_url(
                    target,
                    page_options=page_options,
                    plugin_options=plugin_options,
                    wait_for_completion=wait_for_completion,
                    download_result=download_result,
                    cancel_event=cancel_event,
                    timeout=timeout,
                )
                progress.update(task, completed=True)
            return outcome
    finally:
        if interruptible:
            remove_interrupt_handler()
        if cancel_event.is_set():
            logger.info("Scrape interrupted by user")


def _describe(target: Any) -> str:
    if isinstance(target, list):
        return f"{len(target)} URLs"
    return str(target)


def _handle_output(outcome: Outcome, output: Optional[str], quiet: bool) -> None:
    """Show the outcome summary and its data."""
    if isinstance(outcome, Failed):
        console.print(f"[red]Scraping failed:[/red] {outcome.reason}")
        if not quiet and outcome.details:
            _show_details(outcome.details)
        return

    data = outcome.to_dict()
    if not quiet:
        style = "green" if outcome.status == "delivered" else "yellow"
        console.print(f"[{style}]Outcome:[/{style}] {outcome.status}")
    write_json(data, output, quiet)


def _show_details(details: Dict[str, Any]) -> None:
    table = Table(title="Failure Details")
    table.add_column("Property", style="cyan")
    table.add_column("Value", style="green")
    for key, value in details.items():
        table.add_row(key, str(value))
    console.print(table)
