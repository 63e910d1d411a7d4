"""
Crucible CLI - declarative infrastructure from async Python scripts.
"""

import asyncio
import logging
from pathlib import Path

import typer
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

from .core import CrucibleCore
from .errors import PartialSweepFailure
from .settings import get_settings

# Setup
app = typer.Typer(
    name="crucible",
    help="Declarative infrastructure from async Python scripts",
    add_completion=False,
)
console = Console()


def configure_logging():
    """Configure logging based on settings."""
    settings = get_settings()
    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )


# Configure logging on module import
configure_logging()


def _check_script(script: Path) -> Path:
    """Return the script path, exiting if it does not exist.

    Raises:
        SystemExit: If the script is not found
    """
    if not script.exists():
        console.print(f"[bold red]✗ Error:[/bold red] {script} not found")
        console.print(
            "[dim]Hint: pass the path of a script that defines 'async def main(app)'[/dim]"
        )
        raise typer.Exit(code=1)
    return script


def _create_command_panel(title: str, color: str, script: Path, stage: str | None) -> Panel:
    """Create a Rich Panel for command display."""
    settings = get_settings()
    return Panel.fit(
        f"[bold {color}]{title}[/bold {color}]\n"
        f"Script: {script}\n"
        f"Stage: {stage or settings.stage or '$USER'}",
        border_style=color,
    )


def _handle_command_error(e: Exception, command_type: str) -> None:
    """Print a command failure and exit.

    Raises:
        SystemExit: Always exits with code 1
    """
    if isinstance(e, PartialSweepFailure):
        console.print(f"\n[bold red]✗ {command_type.capitalize()} incomplete[/bold red]")
        for fqn, error in e.failures:
            console.print(f"  • {escape(fqn)}: {escape(str(error))}")
        for fqn in e.skipped:
            console.print(f"  [dim]• {escape(fqn)}: skipped, a dependent still exists[/dim]")
    else:
        console.print(f"\n[bold red]✗ {command_type.capitalize()} failed:[/bold red] {escape(str(e))}")

    raise typer.Exit(code=1)


def _print_resources(resources: list[dict]) -> None:
    if not resources:
        console.print("[dim]No resources.[/dim]")
        return
    table = Table(show_header=True, header_style="bold")
    table.add_column("Resource")
    table.add_column("Kind")
    table.add_column("Status")
    for item in resources:
        status = escape(item["status"])
        if item["pending_deletions"]:
            status += f" [yellow]({item['pending_deletions']} pending delete)[/yellow]"
        table.add_row(escape(item["fqn"]), escape(item["kind"]), status)
    console.print(table)


def _run_command(
    command_name: str,
    panel_title: str,
    panel_color: str,
    core_method: str,
    success_handler,
    script: Path,
    stage: str | None = None,
    adopt: bool | None = None,
    local: bool | None = None,
    state_dir: Path | None = None,
):
    """Execute a Crucible command with common setup and error handling."""
    script = _check_script(script)
    console.print(_create_command_panel(panel_title, panel_color, script, stage))

    try:
        core = CrucibleCore(stage=stage, adopt=adopt, local=local, state_dir=state_dir)
        result = asyncio.run(getattr(core, core_method)(script))
        success_handler(result)
    except Exception as e:
        _handle_command_error(e, command_name)


STAGE_OPTION = typer.Option(None, "--stage", help="Stage name (overrides CRUCIBLE_STAGE)")
STATE_DIR_OPTION = typer.Option(
    None, "--state-dir", help="State directory (overrides CRUCIBLE_STATE_DIR)"
)


@app.command()
def apply(
    script: Path = typer.Argument(..., help="Script defining 'async def main(app)'"),
    stage: str = STAGE_OPTION,
    adopt: bool = typer.Option(
        None, "--adopt/--no-adopt", help="Adopt existing remote objects with the same name"
    ),
    local: bool = typer.Option(
        None, "--local/--remote", help="Run resources in local mode where supported"
    ),
    state_dir: Path = STATE_DIR_OPTION,
):
    """Apply a script: reconcile declared resources and sweep orphans."""

    def _handle_success(result):
        console.print("\n[bold green]✓ Apply successful![/bold green]")
        console.print(f"[dim]App: {result['app']}  Stage: {result['stage']}[/dim]\n")
        _print_resources(result["resources"])

    _run_command(
        command_name="apply",
        panel_title="Crucible Apply",
        panel_color="blue",
        core_method="apply",
        success_handler=_handle_success,
        script=script,
        stage=stage,
        adopt=adopt,
        local=local,
        state_dir=state_dir,
    )


@app.command()
def destroy(
    script: Path = typer.Argument(..., help="Script whose app/stage to destroy"),
    stage: str = STAGE_OPTION,
    state_dir: Path = STATE_DIR_OPTION,
):
    """Destroy every resource recorded for the script's app and stage."""

    def _handle_success(result):
        console.print(
            f"\n[bold green]✓ Destroyed {result['destroyed']} resource(s)[/bold green]"
        )

    _run_command(
        command_name="destroy",
        panel_title="Crucible Destroy",
        panel_color="red",
        core_method="destroy",
        success_handler=_handle_success,
        script=script,
        stage=stage,
        state_dir=state_dir,
    )


@app.command()
def state(
    script: Path = typer.Argument(..., help="Script whose state to show"),
    stage: str = STAGE_OPTION,
    state_dir: Path = STATE_DIR_OPTION,
):
    """List persisted resource records. Secrets are masked."""

    def _handle_success(result):
        console.print(f"\n[dim]App: {result['app']}  Stage: {result['stage']}[/dim]\n")
        _print_resources(result["resources"])
        for item in result["resources"]:
            console.print(f"\n[bold]{escape(item['fqn'])}[/bold]")
            for key, value in (item["output"] or {}).items():
                console.print(f"  {escape(str(key))}: {escape(str(value))}")

    _run_command(
        command_name="state",
        panel_title="Crucible State",
        panel_color="cyan",
        core_method="state",
        success_handler=_handle_success,
        script=script,
        stage=stage,
        state_dir=state_dir,
    )


@app.command()
def version():
    """Show Crucible version."""
    from . import __version__

    console.print(f"Crucible version: [bold]{__version__}[/bold]")


if __name__ == "__main__":
    app()
