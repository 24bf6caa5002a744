#!/usr/bin/env python3
"""deploykit CLI - Main entry point"""

import functools
import os
import sys

from rich.console import Console

# Rich-Click: CLI help with colors
import rich_click as click
from click.exceptions import ClickException, MissingParameter, UsageError

click.rich_click.USE_RICH_MARKUP = True
click.rich_click.USE_MARKDOWN = False
click.rich_click.SHOW_ARGUMENTS = True
click.rich_click.GROUP_ARGUMENTS_OPTIONS = True
click.rich_click.MAX_WIDTH = 100

# COMMANDS and OPTIONS
click.rich_click.STYLE_COMMAND = "bold cyan"
click.rich_click.STYLE_OPTION = "bold magenta"
click.rich_click.STYLE_SWITCH = "bold green"
click.rich_click.STYLE_ARGUMENT = "bold yellow"

# HEADERS
click.rich_click.STYLE_HEADER_TEXT = "bold cyan"
click.rich_click.STYLE_USAGE = "bold yellow"
click.rich_click.STYLE_USAGE_COMMAND = "bold cyan"

# HELP TEXT
click.rich_click.STYLE_HELPTEXT_FIRST_LINE = "bold white"
click.rich_click.STYLE_HELPTEXT = ""
click.rich_click.STYLE_OPTION_HELP = ""

# METAVARS
click.rich_click.STYLE_METAVAR = "bold yellow"
click.rich_click.STYLE_METAVAR_SEPARATOR = "dim"

# DEFAULTS
click.rich_click.STYLE_OPTION_DEFAULT = "dim cyan"
click.rich_click.STYLE_EPILOG_TEXT = "dim"
click.rich_click.STYLE_FOOTER_TEXT = "dim"

# PANEL BORDERS
click.rich_click.STYLE_OPTIONS_PANEL_BORDER = "cyan"
click.rich_click.STYLE_COMMANDS_PANEL_BORDER = "cyan"

click.rich_click.ALIGN_OPTIONS_PANEL = "left"
click.rich_click.ALIGN_ERRORS_PANEL = "left"
click.rich_click.ERRORS_EPILOGUE = ""

from deploykit import __version__
from deploykit.commands import cache, doctor, setup
from deploykit.ui_components import BANNER

console = Console()


def handle_cli_errors(func):
    """Decorator to handle CLI errors gracefully."""

    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        try:
            return func(*args, **kwargs)
        except (MissingParameter, UsageError) as e:
            console.print(f"\n[bold red]✗ Error:[/bold red] {e.format_message()}\n")
            if e.ctx and e.ctx.command_path:
                console.print(
                    f"[dim]Run[/dim] [cyan]{e.ctx.command_path} --help[/cyan] [dim]for usage information[/dim]\n"
                )
            sys.exit(1)
        except ClickException as e:
            e.show()
            sys.exit(e.exit_code)
        except KeyboardInterrupt:
            console.print("\n\n[yellow]⚠️  Operation cancelled by user[/yellow]")
            sys.exit(130)
        except Exception as e:
            console.print(f"\n[bold red]✗ Unexpected error:[/bold red] {e}\n")
            console.print("[dim]If this persists, please report this issue.[/dim]\n")

            # Show traceback when DEBUG or VERBOSE is set
            if os.environ.get("DEBUG") or os.environ.get("VERBOSE"):
                import traceback

                console.print("[dim]Traceback:[/dim]")
                traceback.print_exc()
            sys.exit(1)

    return wrapper


@click.group()
@click.version_option(version=__version__)
@click.pass_context
def cli(ctx: click.Context) -> None:
    """
    deploykit - Prerequisite checks, credentials and deploys for SST apps.

    \b
    Quick Start:
      deploykit doctor                 # Check tools, project, cache, network
      deploykit deploy --stage dev     # Authenticate and deploy
      deploykit deploy --check         # Verify credentials only
      deploykit deploy --unlock        # Release a stale deployment lock

    \b
    Restricted networks:
      deploykit cache create --include-node-modules
      deploykit cache status
    """
    if ctx.invoked_subcommand is None:
        console.print(BANNER)
        console.print("[yellow]Run 'deploykit --help' for usage[/yellow]\n")


# Register commands
cli.add_command(setup.deploy)
cli.add_command(cache.cache)
cli.add_command(doctor.doctor)


@handle_cli_errors
def main():
    """Main entry point with error handling."""
    cli(standalone_mode=False)


@handle_cli_errors
def setup_main():
    """deploykit-setup entry point."""
    setup.setup(standalone_mode=False)


if __name__ == "__main__":
    main()
