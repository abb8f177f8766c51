"""CLI command for managing configuration."""

import json
from pathlib import Path
from typing import Any, Dict

import click
import yaml
from rich.table import Table
from rich.tree import Tree

from ...foundation.config import ConfigManager, get_config_manager
from ...foundation.errors import handle_error
from .common import console


@click.group()
@click.pass_context
def config(ctx):
    """Manage client configuration.

    Settings come from ``/etc/watercrawl/config.yaml``, then
    ``~/.watercrawl/config.yaml``, then the file given with ``--config``, then
    ``WATERCRAWL_*`` environment variables.

    Examples:

        # Show current configuration
        watercrawl config show

        # Get a specific setting
        watercrawl config get stream.download_timeout

        # Initialize default configuration
        watercrawl config init

        # Validate configuration
        watercrawl config validate
    """
    ctx.ensure_object(dict)


@config.command()
@click.option(
    "--format",
    type=click.Choice(["yaml", "json", "table"]),
    default="table",
    show_default=True,
    help="Output format"
)
@click.option(
    "--section",
    help="Show only specific configuration section"
)
@click.pass_context
def show(ctx, format, section):
    """Show current configuration."""
    config_manager = get_config_manager()

    if section:
        config_data = config_manager.get_section(section)
        if config_data is None:
            raise click.ClickException(f"Configuration section '{section}' not found")
    else:
        config_data = config_manager.get_all_settings()

    config_data = _mask_secrets(config_data)

    if format == "json":
        console.print(json.dumps(config_data, indent=2, default=str), markup=False, highlight=False)
    elif format == "yaml":
        console.print(yaml.dump(config_data, default_flow_style=False), markup=False, highlight=False)
    elif section:
        _show_config_section(section, config_data)
    else:
        _show_config_tree(config_data)


@config.command()
@click.argument("key")
@click.option(
    "--format",
    type=click.Choice(["yaml", "json", "raw"]),
    default="raw",
    show_default=True,
    help="Output format"
)
@click.pass_context
def get(ctx, key, format):
    """Get a specific configuration value."""
    value = get_config_manager().get_setting(key)

    if value is None:
        raise click.ClickException(f"Configuration key '{key}' not found")

    if format == "json":
        console.print(json.dumps(value, indent=2, default=str), markup=False, highlight=False)
    elif format == "yaml":
        console.print(yaml.dump({key: value}, default_flow_style=False), markup=False, highlight=False)
    elif isinstance(value, (dict, list)):
        console.print(json.dumps(value, default=str), markup=False, highlight=False)
    else:
        console.print(str(value), markup=False, highlight=False)


@config.command()
@click.option(
    "--config-path",
    type=click.Path(),
    help="Configuration file path (default: ~/.watercrawl/config.yaml)"
)
@click.option(
    "--force",
    is_flag=True,
    help="Overwrite existing configuration file"
)
@click.pass_context
def init(ctx, config_path, force):
    """Initialize default configuration."""
    quiet = ctx.obj.get('quiet', False)
    config_manager = get_config_manager()

    if config_path:
        config_file = Path(config_path)
    else:
        config_file = config_manager.get_default_config_path()

    if config_file.exists() and not force:
        raise click.ClickException(
            f"Configuration file already exists: {config_file}. Use --force to overwrite."
        )

    try:
        created = config_manager.create_default_config(config_file)
    except OSError as e:
        handle_error(e)
        raise click.ClickException(f"Failed to initialize configuration: {str(e)}")

    if not quiet:
        console.print(f"[green]Default configuration created:[/green] {created}")
        console.print("Set api.api_key there or export WATERCRAWL_API_KEY.")
    else:
        console.print(str(created))


@config.command()
@click.option(
    "--config-path",
    type=click.Path(exists=True),
    help="Configuration file to validate"
)
@click.pass_context
def validate(ctx, config_path):
    """Validate configuration."""
    quiet = ctx.obj.get('quiet', False)

    if config_path:
        config_manager = ConfigManager(config_path)
        try:
            config_manager.load_from_file()
        except Exception as e:
            handle_error(e)
            raise click.ClickException(f"Failed to load configuration: {str(e)}")
    else:
        config_manager = get_config_manager()

    result = config_manager.validate_config()

    if result["valid"]:
        if not quiet:
            console.print("[green]Configuration is valid.[/green]")
            for warning in result["warnings"]:
                console.print(f"  [yellow]warning:[/yellow] {warning}")
        else:
            console.print("OK")
        return

    if not quiet:
        console.print("[red]Configuration validation failed:[/red]")
        for error in result["errors"]:
            console.print(f"  - {error}")
    else:
        console.print("INVALID")
    ctx.exit(1)


# Helper functions

def _mask_secrets(data: Any) -> Any:
    """Hide the API key when printing configuration."""
    if isinstance(data, dict):
        masked = {}
        for key, value in data.items():
            if key == "api_key" and value:
                masked[key] = value[:4] + "..." if len(value) > 8 else "***"
            else:
                masked[key] = _mask_secrets(value)
        return masked
    return data


def _show_config_tree(config_data: Dict[str, Any]) -> None:
    """Show configuration as a tree structure."""
    tree = Tree("Configuration")

    def add_dict_to_tree(parent_node, data):
        for key, value in data.items():
            if isinstance(value, dict):
                section_node = parent_node.add(f"[bold cyan]{key}[/bold cyan]")
                add_dict_to_tree(section_node, value)
            else:
                if isinstance(value, str):
                    formatted_value = f'"{value}"'
                elif isinstance(value, bool):
                    formatted_value = f"[green]{value}[/green]"
                elif isinstance(value, (int, float)):
                    formatted_value = f"[yellow]{value}[/yellow]"
                else:
                    formatted_value = str(value)

                parent_node.add(f"{key}: {formatted_value}")

    add_dict_to_tree(tree, config_data)
    console.print(tree)


def _show_config_section(section_name: str, config_data: Dict[str, Any]) -> None:
    """Show a specific configuration section as a table."""
    table = Table(title=f"Configuration Section: {section_name}")
    table.add_column("Key", style="cyan")
    table.add_column("Value", style="green")
    table.add_column("Type", style="yellow")

    for key, value in config_data.items():
        value_str = json.dumps(value) if isinstance(value, (list, dict)) else str(value)
        table.add_row(key, value_str, type(value).__name__)

    console.print(table)
