"""Typer-based CLI for LUNA project scans."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Dict, Optional

import toml
import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.progress import Progress, SpinnerColumn, TextColumn
from rich.table import Table

from . import __version__, config_manager
from . import config as config_module
from .errors import LunaError
from .graph_export import JSON_FILE, REPORT_FILE, export_html, export_json, report_title
from .manifest import load_manifest
from .scanner import Scanner

console = Console()

app = typer.Typer(
    help="🌙 LUNA: call graph, library API usage and dependency tree of JavaScript projects.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)

config_app = typer.Typer(help="Show or change the user scan settings.")
app.add_typer(config_app, name="config")


def version_callback(value: bool):
    """Print version and exit."""
    if value:
        typer.echo(f"LUNA v{__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: Optional[bool] = typer.Option(
        None,
        "--version",
        "-v",
        help="Show version and exit.",
        callback=version_callback,
        is_eager=True,
    )
):
    """LUNA: static graph scanner for JavaScript projects."""
    pass


def configure_logging(debug: bool) -> None:
    """Route log records through rich; DEBUG when *debug* is set."""
    logging.basicConfig(
        level=logging.DEBUG if debug else logging.WARNING,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=Console(stderr=True), show_path=debug)],
        force=True,
    )


@app.command("scan")
def scan_project(
    project_path: Path = typer.Argument(
        Path("."), exists=True, file_okay=False, help="Path to the JavaScript project."
    ),
    output: Optional[Path] = typer.Option(
        None, "--output", "-o", file_okay=False, help="Directory for the report (default: the project)."
    ),
    json_out: bool = typer.Option(False, "--json", help="Also write the graph elements as luna.json."),
    debug: bool = typer.Option(False, "--debug", help="Verbose logging and intermediate dumps."),
    no_call_graph: bool = typer.Option(False, "--no-call-graph", help="Skip call graph extraction."),
    no_library_api: bool = typer.Option(False, "--no-library-api", help="Skip library API discovery."),
    no_dependency_tree: bool = typer.Option(False, "--no-dependency-tree", help="Skip the dependency tree."),
    local: Optional[bool] = typer.Option(
        None,
        "--local/--registry",
        help="Read dependencies from `npm ls` or from the registry (default: local when node_modules exists).",
    ),
    focus: str = typer.Option("", "--focus", "-f", help="Only export elements around matching nodes."),
    open_report: bool = typer.Option(False, "--open", help="Open the report when done."),
):
    """Scan a project and write the interactive LUNA report."""
    configure_logging(debug)
    src_path = project_path.resolve()

    cli_overrides: Dict[str, Any] = {}
    if debug:
        cli_overrides["debug"] = True
    components = {
        name: False
        for name, disabled in (
            ("call_graph", no_call_graph),
            ("library_api", no_library_api),
            ("dependency_tree", no_dependency_tree),
        )
        if disabled
    }
    if components:
        cli_overrides["components"] = components
    if local is not None:
        cli_overrides["dependency_source"] = "local" if local else "registry"

    try:
        manifest = load_manifest(src_path)
        scan_config = config_manager.build_scan_config(
            user=config_manager.load_scan_config(),
            project=manifest.luna,
            cli=cli_overrides,
        )
        if scan_config.debug and not debug:
            configure_logging(True)

        with Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}"),
            console=console,
            transient=True,
        ) as progress:
            progress.add_task(f"LUNA is scanning {src_path}...", total=None)
            result = Scanner(scan_config).scan(src_path, manifest)
    except (LunaError, ValueError) as exc:
        console.print(f"[red]✗ {exc}[/red]")
        raise typer.Exit(code=1)

    out_dir = (output or src_path).resolve()
    out_dir.mkdir(parents=True, exist_ok=True)
    title = report_title(manifest.name, manifest.version, str(src_path))
    report = export_html(result.elements, out_dir / REPORT_FILE, title, focus=focus)
    if json_out:
        export_json(result.elements, out_dir / JSON_FILE, focus=focus)

    table = Table(title=title, show_header=False)
    table.add_column("", style="cyan")
    table.add_column("", justify="right")
    table.add_row("Files", str(len(result.files)))
    table.add_row("Skipped", str(len(result.skipped)))
    table.add_row("Calls", str(sum(len(facts) for facts in result.calls.values())))
    table.add_row("Libraries", str(len({lib for libs in result.libs.values() for lib in libs})))
    table.add_row("Packages", str(len(result.node_modules)))
    table.add_row("Nodes", str(result.node_count))
    table.add_row("Edges", str(result.edge_count))
    console.print(table)

    if result.dependency_error:
        console.print(f"[yellow]⚠ Dependency tree skipped: {result.dependency_error}[/yellow]")
    console.print(f"[green]✓ LUNA report successfully generated in {report}[/green]")

    if open_report:
        typer.launch(str(report))


# ===================================================================
# config
# ===================================================================

def _parse_value(raw: str) -> Any:
    """Interpret a command-line value as a TOML literal, else as a string."""
    try:
        return toml.loads(f"value = {raw}")["value"]
    except toml.TomlDecodeError:
        return raw


@config_app.command("show")
def show_config():
    """Print the effective user scan settings."""
    user = config_manager.load_scan_config()
    effective = config_manager.build_scan_config(user=user)

    table = Table(title=f"Scan settings ({config_module.CONFIG_FILE})")
    table.add_column("Setting", style="cyan")
    table.add_column("Value")
    table.add_column("Source", style="dim")
    for key, value in vars(effective).items():
        if key == "components":
            overridden = user.get("components", {})
            for comp, enabled in vars(value).items():
                source = "config" if comp in overridden else "default"
                table.add_row(f"components.{comp}", str(enabled), source)
            continue
        table.add_row(key, str(value), "config" if key in user else "default")
    console.print(table)


@config_app.command("set")
def set_config(
    key: str = typer.Argument(..., help="Setting name, e.g. registry_url or components.call_graph."),
    value: str = typer.Argument(..., help="New value (TOML literal: true, 6, [\"dist/**\"], ...)."),
):
    """Persist one scan setting to the user config file."""
    if config_manager.save_scan_setting(key, _parse_value(value)):
        console.print(f"[green]✓ {key} saved to {config_module.CONFIG_FILE}[/green]")
    else:
        console.print(f"[red]✗ Invalid value for {key}: {value}[/red]")
        raise typer.Exit(code=1)


if __name__ == "__main__":
    app()
