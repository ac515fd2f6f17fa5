"""
Markdown output formatter.
"""

from endpoint_flow_diff.models.diff import DiffEntryKind, DiffResult
from endpoint_flow_diff.models.endpoint import ExtractedEndpoint
from endpoint_flow_diff.models.flow import format_status
from endpoint_flow_diff.models.report import FlowDiffReport
from endpoint_flow_diff.output.formatters import BaseFormatter, register_formatter


_SECTIONS = [
    ("Guards", (DiffEntryKind.ADDED_GUARD, DiffEntryKind.REMOVED_GUARD, DiffEntryKind.MODIFIED_GUARD)),
    ("Outbound Calls", (DiffEntryKind.ADDED_OUTBOUND, DiffEntryKind.REMOVED_OUTBOUND)),
    ("Termination", (DiffEntryKind.STATUS_CHANGED,)),
]

_MARKERS = {
    DiffEntryKind.ADDED_GUARD: "+",
    DiffEntryKind.ADDED_OUTBOUND: "+",
    DiffEntryKind.REMOVED_GUARD: "-",
    DiffEntryKind.REMOVED_OUTBOUND: "-",
    DiffEntryKind.MODIFIED_GUARD: "~",
    DiffEntryKind.STATUS_CHANGED: "~",
}


def _yes_no(value: bool) -> str:
    return "Yes" if value else "No"


@register_formatter("markdown")
class MarkdownFormatter(BaseFormatter):
    """
    Format output as Markdown.
    """

    def format(self, report: FlowDiffReport) -> str:
        """Format a flow diff report as Markdown."""
        lines = []

        # Header
        lines.append("# Endpoint Flow Diff")
        lines.append("")
        lines.append("> **Analysis Mode:** Structural Execution-Flow Diff")
        lines.append("> **Comparison:** Ordered Guards, Outbound Multiset, Success Status")
        lines.append("")

        # Summary
        lines.append("## Summary")
        lines.append("")
        lines.append(f"- **Baseline:** `{report.baseline_source}`")
        lines.append(f"- **Candidate:** `{report.candidate_source}`")
        lines.append(f"- **Matched Endpoints:** {len(report.results)}")
        lines.append(f"- **Changed Endpoints:** {report.changed_count}")
        lines.append(f"- **Added Endpoints:** {len(report.added_endpoints)}")
        lines.append(f"- **Removed Endpoints:** {len(report.removed_endpoints)}")
        lines.append(f"- **Unanalyzable:** {len(report.unanalyzable)}")
        if report.analysis_duration_ms:
            lines.append(f"- **Analysis Time:** {report.analysis_duration_ms:.2f}ms")
        if report.cancelled:
            lines.append("- **Cancelled:** results are incomplete")
        lines.append("")

        if report.results:
            lines.append("| Endpoint | Status | Guard Changes | Outbound Changes | Status Changed |")
            lines.append("|----------|--------|---------------|------------------|----------------|")
            for result in report.results:
                guard_changes = sum(1 for e in result.entries if e.is_guard_change)
                outbound_changes = sum(1 for e in result.entries if e.is_outbound_change)
                status_changed = bool(result.entries_of(DiffEntryKind.STATUS_CHANGED))
                state = "CHANGED" if result.has_changes else "UNCHANGED"
                lines.append(
                    f"| `{result.identity}` | {state} | {guard_changes} | "
                    f"{outbound_changes} | {_yes_no(status_changed)} |"
                )
            lines.append("")

        # Per-endpoint changes
        if report.changed_results:
            for result in report.changed_results:
                self._render_result(lines, result)
        elif not report.has_errors:
            lines.append("## ✅ No Behavioral Changes")
            lines.append("")
            lines.append("No structural differences detected between flows.")
            lines.append("")

        if report.added_endpoints or report.removed_endpoints:
            lines.append("## Endpoint Set Changes")
            lines.append("")
            for identity in report.added_endpoints:
                lines.append(f"- ➕ `{identity}`")
            for identity in report.removed_endpoints:
                lines.append(f"- ➖ `{identity}`")
            lines.append("")

        if report.partial_endpoints:
            lines.append("## Not Compared")
            lines.append("")
            lines.append("The run was cancelled before these endpoints were extracted on both sides.")
            lines.append("")
            for identity in report.partial_endpoints:
                lines.append(f"- `{identity}`")
            lines.append("")

        if report.unanalyzable:
            lines.append("## ⚠️ Unanalyzable")
            lines.append("")
            for item in report.unanalyzable:
                lines.append(f"- **{item.version.value}:** {item.describe()}")
            lines.append("")

        # Errors and warnings
        if report.errors:
            lines.append("## ❌ Errors")
            lines.append("")
            for error in report.errors:
                lines.append(f"- {error}")
            lines.append("")

        if report.warnings:
            lines.append("## ⚠️ Warnings")
            lines.append("")
            for warning in report.warnings:
                lines.append(f"- {warning}")
            lines.append("")

        return "\n".join(lines)

    def _render_result(self, lines: list[str], result: DiffResult) -> None:
        lines.append(f"## Flow: `{result.identity}`")
        lines.append("")
        for title, kinds in _SECTIONS:
            relevant = [e for e in result.entries if e.kind in kinds]
            if not relevant:
                continue
            lines.append(f"### {title}")
            lines.append("")
            lines.append("```diff")
            for entry in relevant:
                lines.append(f"{_MARKERS[entry.kind]} {entry.describe()}")
            lines.append("```")
            lines.append("")

    def format_flows(self, endpoints: list[ExtractedEndpoint]) -> str:
        """Format extracted flows as a comparison table and one section per flow."""
        if not endpoints:
            return "_No endpoints found._\n"

        lines = []
        lines.append("# Endpoint Flows")
        lines.append("")
        lines.append(f"**Total:** {len(endpoints)} endpoints")
        lines.append("")

        lines.append("| Endpoint | Has Guards | Early Return | Outbound Calls | Success Status |")
        lines.append("|----------|------------|--------------|----------------|----------------|")
        for ep in endpoints:
            flow = ep.flow
            early = any(g.status_code is not None for g in flow.guards)
            lines.append(
                f"| `{ep.identity}` | {_yes_no(bool(flow.guards))} | {_yes_no(early)} | "
                f"{len(flow.outbound_calls)} | {format_status(flow.terminal.status_code)} |"
            )
        lines.append("")

        for ep in endpoints:
            flow = ep.flow
            lines.append(f"## `{ep.identity}`")
            lines.append("")
            lines.append(f"- **Handler:** `{ep.handler.qualified_name}`")
            lines.append(f"- **Location:** `{ep.handler.location}`")
            lines.append("")

            if flow.guards:
                lines.append("### Guards")
                lines.append("")
                for guard in flow.guards:
                    lines.append(f"{guard.position + 1}. `{guard.signature}` → {format_status(guard.status_code)}")
                lines.append("")

            if flow.outbound_calls:
                lines.append("### Outbound Calls")
                lines.append("")
                for call in flow.outbound_calls:
                    lines.append(
                        f"- `{call.describe()}` _({call.detection.value}, "
                        f"{call.confidence.value} confidence)_"
                    )
                lines.append("")

            lines.append("### Termination")
            lines.append("")
            suffix = " _(implicit)_" if flow.terminal.implicit else ""
            lines.append(f"- {flow.terminal.describe()}{suffix}")
            lines.append("")

        return "\n".join(lines)

    def format_endpoints(self, endpoints: list[ExtractedEndpoint]) -> str:
        """Format a list of endpoints as a Markdown table."""
        if not endpoints:
            return "_No endpoints found._\n"

        lines = []
        lines.append("# Endpoints")
        lines.append("")
        lines.append(f"**Total:** {len(endpoints)} endpoints")
        lines.append("")

        lines.append("| Method | Path | Handler | File | Line |")
        lines.append("|--------|------|---------|------|------|")

        for ep in endpoints:
            lines.append(
                f"| {ep.identity.method.value} | `{ep.identity.path}` | "
                f"`{ep.handler.qualified_name}` | `{ep.handler.file_path.name}` | "
                f"{ep.handler.line_number} |"
            )

        lines.append("")
        return "\n".join(lines)
