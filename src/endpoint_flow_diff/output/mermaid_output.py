"""
Mermaid diagram output formatter.

Flows render as ``graph TD`` with one subgraph per endpoint: guards are
decision nodes with a dotted exit to their status, outbound calls are
process nodes and the success response is a terminal node.
"""

from endpoint_flow_diff.models.diff import DiffEntryKind
from endpoint_flow_diff.models.endpoint import ExtractedEndpoint
from endpoint_flow_diff.models.flow import format_status
from endpoint_flow_diff.models.report import FlowDiffReport
from endpoint_flow_diff.output.formatters import BaseFormatter, register_formatter


def _label(text: str) -> str:
    """Escape a node label for use inside double quotes."""
    return text.replace('"', "#quot;")


@register_formatter("mermaid")
class MermaidFormatter(BaseFormatter):
    """
    Format output as Mermaid diagrams.
    """

    def __init__(self, legend: bool = True) -> None:
        self.legend = legend

    def format_flows(self, endpoints: list[ExtractedEndpoint]) -> str:
        """Render one subgraph per endpoint flow."""
        lines = ["graph TD"]

        for i, ep in enumerate(endpoints):
            flow = ep.flow
            lines.append(f'\tsubgraph Flow_{i} ["{_label(str(ep.identity))}"]')

            last = None
            for guard in flow.guards:
                node = f"F{i}_G{guard.position}"
                lines.append(f'\t\t{node}{{{{"{_label(guard.signature)}"}}}}')
                lines.append(f'\t\t{node}_X(("{format_status(guard.status_code)}"))')
                lines.append(f"\t\t{node} -.->|true| {node}_X")
                if last is not None:
                    lines.append(f"\t\t{last} -->|false| {node}")
                last = node

            for call in flow.outbound_calls:
                node = f"F{i}_C{call.position}"
                lines.append(f'\t\t{node}["{_label(call.describe())}"]')
                if last is not None:
                    arrow = "-->|false|" if last.startswith(f"F{i}_G") else "-->"
                    lines.append(f"\t\t{last} {arrow} {node}")
                last = node

            terminal = f"F{i}_T"
            lines.append(f'\t\t{terminal}(("{_label(flow.terminal.describe())}"))')
            if last is not None:
                arrow = "-->|false|" if last.startswith(f"F{i}_G") else "-->"
                lines.append(f"\t\t{last} {arrow} {terminal}")
            lines.append("\tend")

        if self.legend:
            lines.append("")
            lines.append("\t%% Legend")
            lines.append("\tsubgraph Legend")
            lines.append('\t\tl1{{"Guard"}} -.->|true| l2(("Early exit"))')
            lines.append('\t\tl3["Outbound call"] --> l4(("Success response"))')
            lines.append("\tend")

        return "\n".join(lines) + "\n"

    def format(self, report: FlowDiffReport) -> str:
        """Render a summary diagram of the changes in a report."""
        lines = ["graph LR"]
        lines.append('\tB["Baseline"] --> C["Candidate"]')

        for i, result in enumerate(report.changed_results):
            node = f"E{i}"
            lines.append(f'\tC --> {node}["{_label(str(result.identity))}"]')
            for j, entry in enumerate(result.entries):
                change = f"{node}_D{j}"
                lines.append(f'\t{node} --> {change}["{_label(entry.describe())}"]')
                lines.append(f"\tclass {change} {entry.kind.value}")

        for i, identity in enumerate(report.added_endpoints):
            lines.append(f'\tC --> A{i}["{_label(str(identity))}"]')
            lines.append(f"\tclass A{i} added_endpoint")
        for i, identity in enumerate(report.removed_endpoints):
            lines.append(f'\tC -.-> R{i}["{_label(str(identity))}"]')
            lines.append(f"\tclass R{i} removed_endpoint")

        lines.append("")
        lines.append(f"\tclassDef {DiffEntryKind.ADDED_GUARD.value} fill:#d4edda")
        lines.append(f"\tclassDef {DiffEntryKind.ADDED_OUTBOUND.value} fill:#d4edda")
        lines.append(f"\tclassDef {DiffEntryKind.REMOVED_GUARD.value} fill:#f8d7da")
        lines.append(f"\tclassDef {DiffEntryKind.REMOVED_OUTBOUND.value} fill:#f8d7da")
        lines.append(f"\tclassDef {DiffEntryKind.MODIFIED_GUARD.value} fill:#fff3cd")
        lines.append(f"\tclassDef {DiffEntryKind.STATUS_CHANGED.value} fill:#e2d9f3")
        lines.append("\tclassDef added_endpoint stroke:#28a745")
        lines.append("\tclassDef removed_endpoint stroke:#dc3545,stroke-dasharray:4")

        return "\n".join(lines) + "\n"

    def format_endpoints(self, endpoints: list[ExtractedEndpoint]) -> str:
        """Render endpoints grouped under their owning module."""
        lines = ["graph LR"]
        modules: dict[str, str] = {}

        for i, ep in enumerate(endpoints):
            owner = ep.handler.module
            if owner not in modules:
                modules[owner] = f"M{len(modules)}"
                lines.append(f'\t{modules[owner]}["{_label(owner)}"]')
            lines.append(f'\t{modules[owner]} --> P{i}["{_label(str(ep.identity))}"]')

        return "\n".join(lines) + "\n"
