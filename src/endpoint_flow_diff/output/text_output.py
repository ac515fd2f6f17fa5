"""
Human-readable text output formatter.
"""

from io import StringIO

from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

from endpoint_flow_diff.models.diff import DiffEntryKind, DiffResult
from endpoint_flow_diff.models.endpoint import ExtractedEndpoint
from endpoint_flow_diff.models.flow import format_status
from endpoint_flow_diff.models.report import FlowDiffReport
from endpoint_flow_diff.output.formatters import BaseFormatter, register_formatter


_KIND_STYLES = {
    DiffEntryKind.ADDED_GUARD: "green",
    DiffEntryKind.REMOVED_GUARD: "red",
    DiffEntryKind.MODIFIED_GUARD: "yellow",
    DiffEntryKind.ADDED_OUTBOUND: "green",
    DiffEntryKind.REMOVED_OUTBOUND: "red",
    DiffEntryKind.STATUS_CHANGED: "magenta",
}

_KIND_ICONS = {
    DiffEntryKind.ADDED_GUARD: "+",
    DiffEntryKind.REMOVED_GUARD: "-",
    DiffEntryKind.MODIFIED_GUARD: "~",
    DiffEntryKind.ADDED_OUTBOUND: "+",
    DiffEntryKind.REMOVED_OUTBOUND: "-",
    DiffEntryKind.STATUS_CHANGED: "~",
}


@register_formatter("text")
class TextFormatter(BaseFormatter):
    """
    Format output as human-readable text using Rich.
    """

    def __init__(self, colorize: bool = True, show_unchanged: bool = False) -> None:
        """
        Initialize the text formatter.

        Args:
            colorize: Whether to use colors in output.
            show_unchanged: List matched endpoints without changes.
        """
        self.colorize = colorize
        self.show_unchanged = show_unchanged

    def _console(self, output: StringIO) -> Console:
        return Console(file=output, force_terminal=self.colorize, no_color=not self.colorize, width=120)

    def _style(self, kind: DiffEntryKind) -> str:
        """Get the style for a change kind."""
        if not self.colorize:
            return "default"
        return _KIND_STYLES.get(kind, "default")

    def format(self, report: FlowDiffReport) -> str:
        """Format a flow diff report as text."""
        output = StringIO()
        console = self._console(output)

        # Header
        console.print()
        console.print(
            Panel.fit(
                "[bold]Endpoint Flow Diff[/bold]\n"
                "Behavioral Change Report",
                border_style="blue",
            )
        )
        console.print()

        # Summary
        console.print("[bold]Summary[/bold]")
        console.print(f"  Baseline: {escape(report.baseline_source)}")
        console.print(f"  Candidate: {escape(report.candidate_source)}")
        console.print(f"  Matched Endpoints: {len(report.results)}")
        console.print(f"  Changed Endpoints: {report.changed_count}")
        console.print(f"  Added / Removed Endpoints: {len(report.added_endpoints)} / {len(report.removed_endpoints)}")
        console.print(f"  Unanalyzable: {len(report.unanalyzable)}")
        if report.analysis_duration_ms:
            console.print(f"  Analysis Time: {report.analysis_duration_ms:.2f}ms")
        if report.cancelled:
            console.print("  [bold yellow]Cancelled: results are incomplete[/bold yellow]")
        console.print()

        # Changed endpoints
        if report.changed_results:
            console.print("[bold]Changed Endpoints[/bold]")
            console.print()
            for result in report.changed_results:
                self._print_result(console, result)
        elif not report.has_errors:
            console.print("[green]No behavioral changes detected.[/green]")
            console.print()

        if self.show_unchanged and report.unchanged_count:
            console.print("[bold]Unchanged Endpoints[/bold]")
            for result in report.results:
                if not result.has_changes:
                    console.print(f"  [dim]{escape(str(result.identity))}[/dim]")
            console.print()

        if report.added_endpoints:
            console.print("[bold green]Added Endpoints[/bold green]")
            for identity in report.added_endpoints:
                console.print(f"  + {escape(str(identity))}")
            console.print()

        if report.removed_endpoints:
            console.print("[bold red]Removed Endpoints[/bold red]")
            for identity in report.removed_endpoints:
                console.print(f"  - {escape(str(identity))}")
            console.print()

        if report.partial_endpoints:
            console.print("[bold yellow]Not Compared (run cancelled)[/bold yellow]")
            for identity in report.partial_endpoints:
                console.print(f"  ? {escape(str(identity))}")
            console.print()

        if report.unanalyzable:
            console.print("[bold yellow]Unanalyzable[/bold yellow]")
            for item in report.unanalyzable:
                console.print(f"  {escape(f'[{item.version.value}]')} {escape(item.describe())}")
            console.print()

        # Errors and warnings
        if report.errors:
            console.print("[bold red]Errors[/bold red]")
            for error in report.errors:
                console.print(f"  ❌ {escape(error)}")
            console.print()

        if report.warnings:
            console.print("[bold yellow]Warnings[/bold yellow]")
            for warning in report.warnings:
                console.print(f"  ⚠️  {escape(warning)}")
            console.print()

        return output.getvalue()

    def _print_result(self, console: Console, result: DiffResult) -> None:
        console.print(f"  [bold cyan]{escape(str(result.identity))}[/bold cyan]")
        for entry in result.entries:
            style = self._style(entry.kind)
            icon = _KIND_ICONS[entry.kind]
            console.print(f"    [{style}]{icon} {escape(entry.describe())}[/{style}]")
        console.print()

    def format_flows(self, endpoints: list[ExtractedEndpoint]) -> str:
        """Format extracted flows, one panel per endpoint."""
        output = StringIO()
        console = self._console(output)

        if not endpoints:
            console.print("[dim]No endpoints found.[/dim]")
            return output.getvalue()

        for ep in endpoints:
            flow = ep.flow
            lines = [f"[dim]{escape(ep.handler.qualified_name)} ({escape(ep.handler.location)})[/dim]"]
            for guard in flow.guards:
                lines.append(f"[yellow]guard[/yellow]    {escape(guard.signature)} → {format_status(guard.status_code)}")
            for call in flow.outbound_calls:
                lines.append(
                    f"[cyan]outbound[/cyan] {escape(call.describe())} "
                    f"[dim]({call.detection.value}, {call.confidence.value})[/dim]"
                )
            implicit = " [dim](implicit)[/dim]" if flow.terminal.implicit else ""
            lines.append(f"[green]respond[/green]  {escape(flow.terminal.describe())}{implicit}")
            console.print(Panel("\n".join(lines), title=escape(str(ep.identity)), title_align="left"))

        console.print(f"\nTotal: {len(endpoints)} endpoints")
        return output.getvalue()

    def format_endpoints(self, endpoints: list[ExtractedEndpoint]) -> str:
        """Format a list of endpoints as a table."""
        output = StringIO()
        console = self._console(output)

        if not endpoints:
            console.print("[dim]No endpoints found.[/dim]")
            return output.getvalue()

        table = Table(title="Endpoints", show_header=True, header_style="bold")
        table.add_column("Method", style="cyan")
        table.add_column("Path", style="green")
        table.add_column("Handler", style="yellow")
        table.add_column("File", style="dim")
        table.add_column("Line", justify="right")

        for ep in endpoints:
            table.add_row(
                ep.identity.method.value,
                ep.identity.path,
                ep.handler.qualified_name,
                ep.handler.file_path.name,
                str(ep.handler.line_number),
            )

        console.print(table)
        console.print(f"\nTotal: {len(endpoints)} endpoints")

        return output.getvalue()
