"""
Command-line interface for Endpoint Flow Diff.

This module provides the CLI using Click framework for argument parsing
and orchestrates the analysis pipeline.
"""

import fnmatch
import sys
import threading
from pathlib import Path
from typing import Any, Optional

import click
from rich.console import Console
from rich.progress import Progress, SpinnerColumn, TextColumn, BarColumn, TaskProgressColumn, TimeElapsedColumn

from endpoint_flow_diff import __version__
from endpoint_flow_diff.config import Config, find_config_file, load_config
from endpoint_flow_diff.logging_config import setup_logging
from endpoint_flow_diff.models.endpoint import EndpointMethod, ExtractedEndpoint, normalize_route_path

console = Console(stderr=True)

FORMATS = ["text", "json", "yaml", "markdown", "mermaid"]


def _format_option(default: str = "text") -> Any:
    return click.option(
        "--format",
        "-f",
        "output_format",
        type=click.Choice(FORMATS),
        default=default,
        help=f"Output format (default: {default}).",
    )


def _output_option() -> Any:
    return click.option(
        "--output",
        "-o",
        type=click.Path(path_type=Path),
        help="Output file path. If not specified, prints to stdout.",
    )


def _make_formatter(output_format: str, config: Config, to_file: bool) -> Any:
    from endpoint_flow_diff.output.formatters import get_formatter

    if output_format == "text":
        return get_formatter(
            "text",
            colorize=config.output.colorize and not to_file,
            show_unchanged=config.output.show_unchanged,
        )
    return get_formatter(output_format)


def _emit(formatted_output: str, output: Optional[Path]) -> None:
    if output:
        output.write_text(formatted_output, encoding="utf-8")
        console.print(f"[green]Results written to:[/green] {output}")
    else:
        # Print directly to stdout to preserve ANSI codes from formatter
        sys.stdout.write(formatted_output)
        sys.stdout.flush()


def _filter_endpoints(
    endpoints: list[ExtractedEndpoint],
    method: Optional[str],
    path: Optional[str],
) -> list[ExtractedEndpoint]:
    """Keep endpoints matching the method and the path (exact or glob)."""
    selected = endpoints
    if method:
        wanted = EndpointMethod(method.upper())
        selected = [ep for ep in selected if ep.identity.method == wanted]
    if path:
        pattern = path if any(c in path for c in "*?[") else normalize_route_path(path)
        selected = [ep for ep in selected if fnmatch.fnmatchcase(ep.identity.path, pattern)]
    return selected


@click.group()
@click.version_option(version=__version__, prog_name="endpoint-flow-diff")
@click.option(
    "--config",
    "-c",
    type=click.Path(exists=True, path_type=Path),
    help="Path to configuration file (default: nearest .flow-diff.yaml).",
)
@click.option(
    "--quiet",
    "-q",
    is_flag=True,
    help="Only log errors.",
)
@click.pass_context
def cli(ctx: click.Context, config: Optional[Path], quiet: bool) -> None:
    """Endpoint Flow Diff - Report behavioral changes of HTTP endpoints between two versions."""
    ctx.ensure_object(dict)
    config_path = config or find_config_file(Path.cwd())
    try:
        loaded = load_config(config_path)
    except (FileNotFoundError, ValueError) as e:
        console.print(f"[red]Error:[/red] {e}")
        raise click.Abort()
    ctx.obj["config"] = loaded
    ctx.obj["quiet"] = quiet
    setup_logging(verbose=loaded.output.verbose, quiet=quiet)


@cli.command()
@click.argument("baseline", type=click.Path(exists=True, path_type=Path))
@click.argument("candidate", type=click.Path(exists=True, path_type=Path))
@_format_option()
@_output_option()
@click.option(
    "--workers",
    "-w",
    type=click.IntRange(min=1),
    help="Worker threads for extraction and diffing.",
)
@click.option(
    "--strict",
    is_flag=True,
    help="Abort when the report contains errors such as identity collisions.",
)
@click.option(
    "--fail-on-change",
    is_flag=True,
    help="Exit with status 1 when behavioral changes were found.",
)
@click.option(
    "--timeout",
    type=click.FloatRange(min=0, min_open=True),
    help="Cancel the analysis after this many seconds and report partial results.",
)
@click.option(
    "--verbose",
    "-v",
    is_flag=True,
    help="Enable verbose output.",
)
@click.pass_context
def diff(
    ctx: click.Context,
    baseline: Path,
    candidate: Path,
    output_format: str,
    output: Optional[Path],
    workers: Optional[int],
    strict: bool,
    fail_on_change: bool,
    timeout: Optional[float],
    verbose: bool,
) -> None:
    """Compare the endpoint flows of BASELINE and CANDIDATE sources."""
    from endpoint_flow_diff.analyzer.flow_analyzer import FlowDiffAnalyzer

    config: Config = ctx.obj["config"]
    if workers is not None:
        config = config.model_copy(
            update={"analysis": config.analysis.model_copy(update={"max_workers": workers})}
        )
    if verbose:
        setup_logging(verbose=True, quiet=ctx.obj["quiet"])
        console.print(f"[blue]Baseline:[/blue] {baseline}")
        console.print(f"[blue]Candidate:[/blue] {candidate}")
        if workers:
            console.print(f"[blue]Workers:[/blue] {workers}")

    cancel_event = threading.Event()
    timer = threading.Timer(timeout, cancel_event.set) if timeout else None

    try:
        analyzer = FlowDiffAnalyzer(baseline, candidate, config=config)

        if timer:
            timer.start()

        # Create progress bar
        with Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}"),
            BarColumn(),
            TaskProgressColumn(),
            TimeElapsedColumn(),
            console=console,
            transient=True,  # Remove progress bar when done
        ) as progress:
            task = progress.add_task("Initializing...", total=100)

            def update_progress(current: int, total: int, description: str) -> None:
                progress.update(task, completed=current, total=total, description=description)

            report = analyzer.analyze(progress_callback=update_progress, cancel_event=cancel_event)

        formatter = _make_formatter(output_format, config, to_file=output is not None)
        _emit(formatter.format(report), output)

    except Exception as e:
        console.print(f"[red]Error:[/red] {e}")
        if verbose:
            import traceback
            console.print(traceback.format_exc())
        raise click.Abort()
    finally:
        if timer:
            timer.cancel()

    if strict and report.has_errors:
        console.print(f"[red]Aborting:[/red] {len(report.errors)} error(s) in strict mode")
        raise click.Abort()

    if fail_on_change and report.has_changes:
        ctx.exit(1)


@cli.command()
@click.argument("source", type=click.Path(exists=True, path_type=Path))
@click.option(
    "--method",
    "-m",
    type=click.Choice([m.value for m in EndpointMethod], case_sensitive=False),
    help="Only show endpoints with this HTTP method.",
)
@click.option(
    "--path",
    "-p",
    "route_path",
    type=str,
    help="Only show endpoints with this route path (glob patterns allowed).",
)
@_format_option()
@_output_option()
@click.pass_context
def flow(
    ctx: click.Context,
    source: Path,
    method: Optional[str],
    route_path: Optional[str],
    output_format: str,
    output: Optional[Path],
) -> None:
    """Extract and print the flow graph of every handler in SOURCE."""
    from endpoint_flow_diff.analyzer.flow_analyzer import SourceAnalyzer

    config: Config = ctx.obj["config"]

    try:
        analysis = SourceAnalyzer(source, config).analyze()
        endpoints = _filter_endpoints(analysis.endpoints, method, route_path)

        for item in analysis.unanalyzable:
            console.print(f"[yellow]Unanalyzable:[/yellow] {item.describe()}")

        formatter = _make_formatter(output_format, config, to_file=output is not None)
        _emit(formatter.format_flows(endpoints), output)

    except Exception as e:
        console.print(f"[red]Error:[/red] {e}")
        raise click.Abort()


@cli.command("list")
@click.argument("source", type=click.Path(exists=True, path_type=Path))
@_format_option()
@_output_option()
@click.pass_context
def list_endpoints(
    ctx: click.Context,
    source: Path,
    output_format: str,
    output: Optional[Path],
) -> None:
    """List all endpoints discovered in SOURCE."""
    from endpoint_flow_diff.analyzer.flow_analyzer import SourceAnalyzer

    config: Config = ctx.obj["config"]

    try:
        analysis = SourceAnalyzer(source, config).analyze()
        formatter = _make_formatter(output_format, config, to_file=output is not None)
        _emit(formatter.format_endpoints(analysis.endpoints), output)

    except Exception as e:
        console.print(f"[red]Error:[/red] {e}")
        raise click.Abort()


def main() -> None:
    """Main entry point for the CLI."""
    cli(obj={})
