"""Helpers shared by the CLI commands."""

import asyncio
import json
import signal
from pathlib import Path
from typing import Any, Dict, Optional

import click
from rich.console import Console

from ...client import WaterCrawlClient
from ...foundation.config import get_config_manager
from ...foundation.logging import get_logger

console = Console()
logger = get_logger(__name__)


def make_client(ctx: click.Context) -> WaterCrawlClient:
    """Build a client from the global CLI options."""
    obj = ctx.obj or {}
    return WaterCrawlClient(
        api_key=obj.get("api_key"),
        base_url=obj.get("base_url"),
        config_manager=get_config_manager(),
        http_client=obj.get("http_client"),
    )


def parse_json_option(value: Optional[str], name: str) -> Optional[Dict[str, Any]]:
    """Parse a JSON object given on the command line."""
    if value is None:
        return None
    try:
        parsed = json.loads(value)
    except ValueError as e:
        raise click.BadParameter(f"invalid JSON: {e}", param_hint=name)
    if not isinstance(parsed, dict):
        raise click.BadParameter("must be a JSON object", param_hint=name)
    return parsed


def install_interrupt_handler(cancel_event: asyncio.Event) -> bool:
    """Make Ctrl-C set ``cancel_event`` instead of killing the event loop."""
    loop = asyncio.get_running_loop()
    try:
        loop.add_signal_handler(signal.SIGINT, cancel_event.set)
    except (NotImplementedError, RuntimeError, ValueError):
        # Not on the main thread, or the platform has no loop signal support
        return False
    return True


def remove_interrupt_handler() -> None:
    loop = asyncio.get_running_loop()
    try:
        loop.remove_signal_handler(signal.SIGINT)
    except (NotImplementedError, RuntimeError, ValueError) as e:
        logger.debug(f"Could not remove interrupt handler: {e}")


def write_json(data: Any, output: Optional[str], quiet: bool) -> None:
    """Print ``data`` as JSON or save it to ``output``."""
    content = json.dumps(data, indent=2, default=str)
    if output:
        output_file = Path(output)
        output_file.parent.mkdir(parents=True, exist_ok=True)
        output_file.write_text(content)
        if not quiet:
            console.print(f"[green]Output saved to:[/green] {output}")
    else:
        console.print(content, markup=False, highlight=False, soft_wrap=True)
