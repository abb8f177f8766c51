"""CLI commands for managing crawl requests."""

import asyncio
import json
from typing import Any

import click
from rich.markup import escape
from rich.table import Table

from ...foundation.errors import WaterCrawlError, handle_error
from ...models.crawl import CrawlRequestList, CrawlResultList
from ...models.events import Event, EventKind
from .common import (
    console, logger, make_client, parse_json_option,
    install_interrupt_handler, remove_interrupt_handler, write_json
)


@click.group()
@click.pass_context
def requests(ctx):
    """Manage crawl requests.

    Examples:

        # List recent crawl requests
        watercrawl requests list

        # Create a crawl request
        watercrawl requests create https://example.com

        # Follow its status stream
        watercrawl requests monitor <uuid> --download

        # Download the result
        watercrawl requests download <uuid> -o result.json
    """
    ctx.ensure_object(dict)


def _run(ctx: click.Context, coro_factory, error_message: str) -> Any:
    """Run an API call with a fresh client and report failures the CLI way."""
    verbose = ctx.obj.get('verbose', 0) if ctx.obj else 0

    async def runner():
        async with make_client(ctx) as client:
            return await coro_factory(client)

    try:
        return asyncio.run(runner())
    except WaterCrawlError as e:
        handle_error(e)
        if verbose > 0:
            console.print_exception()
        raise click.ClickException(f"{error_message}: {str(e)}")


@requests.command(name="list")
@click.option("--page", type=int, default=1, show_default=True, help="Page number")
@click.option("--page-size", type=int, default=10, show_default=True, help="Items per page")
@click.option(
    "--format",
    type=click.Choice(["table", "json"]),
    default="table",
    help="Output format"
)
@click.pass_context
def list_requests(ctx, page, page_size, format):
    """List crawl requests."""
    result = _run(
        ctx,
        lambda client: client.get_crawl_requests(page=page, page_size=page_size),
        "Failed to list crawl requests",
    )

    if format == "json":
        write_json(result.model_dump(), None, True)
    else:
        _display_request_list(result)


@requests.command()
@click.argument("request_id")
@click.pass_context
def get(ctx, request_id):
    """Show one crawl request."""
    result = _run(
        ctx,
        lambda client: client.get_crawl_request(request_id),
        "Failed to get crawl request",
    )
    write_json(result.model_dump(), None, True)


@requests.command()
@click.argument("urls", nargs=-1, required=True)
@click.option("--spider-options", help="Spider options as a JSON object")
@click.option("--page-options", help="Page options as a JSON object")
@click.option("--plugin-options", help="Plugin options as a JSON object")
@click.pass_context
def create(ctx, urls, spider_options, page_options, plugin_options):
    """Create a crawl request for one or more URLs."""
    quiet = ctx.obj.get('quiet', False)

    spider_opts = parse_json_option(spider_options, "--spider-options")
    page_opts = parse_json_option(page_options, "--page-options")
    plugin_opts = parse_json_option(plugin_options, "--plugin-options")
    target = urls[0] if len(urls) == 1 else list(urls)

    result = _run(
        ctx,
        lambda client: client.create_crawl_request(
            target,
            spider_options=spider_opts,
            page_options=page_opts,
            plugin_options=plugin_opts,
        ),
        "Failed to create crawl request",
    )

    if quiet:
        console.print(result.uuid)
    else:
        console.print("[green]Crawl request created![/green]")
        console.print(f"UUID: {result.uuid}")
        console.print(f"Status: {result.status}")
        console.print(f"Use 'watercrawl requests monitor {result.uuid}' to follow it")


@requests.command()
@click.argument("request_id")
@click.pass_context
def stop(ctx, request_id):
    """Stop a running crawl request."""
    quiet = ctx.obj.get('quiet', False)

    _run(ctx, lambda client: client.stop_crawl_request(request_id), "Failed to stop crawl request")

    if quiet:
        console.print("OK")
    else:
        console.print(f"[green]Stopped crawl request {request_id}[/green]")


@requests.command()
@click.argument("request_id")
@click.option("--page", type=int, default=1, show_default=True, help="Page number")
@click.option("--page-size", type=int, default=10, show_default=True, help="Items per page")
@click.option(
    "--format",
    type=click.Choice(["table", "json"]),
    default="table",
    help="Output format"
)
@click.pass_context
def results(ctx, request_id, page, page_size, format):
    """List the page results of a crawl request."""
    result = _run(
        ctx,
        lambda client: client.get_crawl_request_results(request_id, page=page, page_size=page_size),
        "Failed to get crawl results",
    )

    if format == "json":
        write_json(result.model_dump(), None, True)
    else:
        _display_result_list(result)


@requests.command()
@click.argument("request_id")
@click.option(
    "--output",
    "-o",
    type=click.Path(),
    help="Output file path"
)
@click.pass_context
def download(ctx, request_id, output):
    """Download the accumulated result of a crawl request."""
    quiet = ctx.obj.get('quiet', False)

    result = _run(
        ctx,
        lambda client: client.download_crawl_request(request_id),
        "Failed to download crawl request",
    )
    write_json(result, output, quiet)


@requests.command()
@click.argument("request_id")
@click.option(
    "--download",
    "download_results",
    is_flag=True,
    help="Replace result events with the downloaded result"
)
@click.option(
    "--timeout",
    type=float,
    help="Stop monitoring after this many seconds"
)
@click.option(
    "--format",
    type=click.Choice(["pretty", "jsonl"]),
    default="pretty",
    help="Event output format"
)
@click.pass_context
def monitor(ctx, request_id, download_results, timeout, format):
    """Follow the status stream of a crawl request until it ends.

    Press Ctrl-C to stop monitoring; the crawl itself keeps running.
    """
    quiet = ctx.obj.get('quiet', False)

    async def follow(client) -> int:
        cancel_event = asyncio.Event()
        interruptible = install_interrupt_handler(cancel_event)
        count = 0
        try:
            stream = await client.monitor_crawl_request(
                request_id,
                download=download_results,
                cancel_event=cancel_event,
                timeout=timeout,
            )
            async with stream:
                async for event in stream:
                    count += 1
                    _print_event(event, format)
        finally:
            if interruptible:
                remove_interrupt_handler()
            if cancel_event.is_set():
                logger.info(f"Stopped monitoring {request_id}")
        return count

    count = _run(ctx, follow, "Monitoring failed")

    if not quiet and format == "pretty":
        console.print(f"[bold]{count}[/bold] events received")


def _print_event(event: Event, format: str) -> None:
    if format == "jsonl":
        console.print(json.dumps(event.to_wire(), default=str), markup=False, highlight=False, soft_wrap=True)
        return

    kind = event.known_kind
    payload = event.payload_object() or {}

    if kind is EventKind.PROGRESS and "progress" in payload:
        console.print(f"[cyan]progress[/cyan] {payload['progress']}%")
    elif kind is EventKind.STATE:
        console.print(f"[yellow]state[/yellow] {escape(str(payload.get('status', '')))}")
    elif kind is EventKind.ERROR:
        console.print(f"[red]error[/red] {escape(json.dumps(event.payload, default=str))}")
    else:
        console.print(f"[green]{escape(event.kind)}[/green] {escape(json.dumps(event.payload, default=str))}")


def _display_request_list(result: CrawlRequestList) -> None:
    table = Table(title=f"Crawl Requests ({result.count} total)")
    table.add_column("UUID", style="cyan")
    table.add_column("URL", style="green")
    table.add_column("Status", style="yellow")
    table.add_column("Progress", justify="right")
    table.add_column("Created")

    for request in result.results:
        url = request.url if isinstance(request.url, str) else ", ".join(request.url or [])
        table.add_row(
            request.uuid,
            url,
            request.status,
            f"{request.progress:.0f}%",
            request.created_at or "N/A",
        )

    console.print(table)


def _display_result_list(result: CrawlResultList) -> None:
    table = Table(title=f"Crawl Results ({result.count} total)")
    table.add_column("UUID", style="cyan")
    table.add_column("URL", style="green")
    table.add_column("Status", style="yellow")

    for item in result.results:
        table.add_row(item.uuid, item.url, item.status)

    console.print(table)
