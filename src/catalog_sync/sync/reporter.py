"""Change report formatting functions.

Provides human-readable and machine-readable output for handled changes:

- ``format_change_report`` -- full summary with per-action sections.
- ``format_events`` -- recent connector events, newest first.
- ``report_to_json`` -- structured dict for MCP tool output.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .events import ConnectorEvent
    from .models import ChangeReport, Mutation

from .models import MutationAction

_SECTIONS = [
    ("Deleted", "deleted"),
    ("Relinked", "relinked"),
    ("Imported", "imported"),
    ("Resources", "resource_mutations"),
]

# ------------------------------------------------------------------
# Human-readable report
# ------------------------------------------------------------------


def _mutation_line(m: Mutation) -> str:
    line = f"  [{m.action.value}] {m.code}"
    if m.detail:
        line += f" ({m.detail})"
    return line


def format_change_report(report: ChangeReport) -> str:
    """Format a change report as human-readable text.

    Sections are only included when they contain at least one mutation.

    Args:
        report: The completed change report.

    Returns:
        Multi-line formatted string.
    """
    lines: list[str] = []

    header = (
        f"Change report for {report.event.value} "
        f"(channel {report.channel_id}, entity {report.entity_id})"
    )
    lines.append(header)
    lines.append(f"Started: {report.started_at}")
    if report.completed_at:
        lines.append(f"Completed: {report.completed_at}")
    lines.append("")

    if report.success:
        lines.append(f"Status: ok ({len(report.mutations)} mutations)")
    else:
        lines.append(f"Status: FAILED: {report.error}")
    if report.resource_included:
        lines.append("Resources included")
    lines.append("")

    for label, attr in _SECTIONS:
        mutations = getattr(report, attr)
        if not mutations:
            continue
        lines.append(f"{label}:")
        for m in mutations:
            lines.append(_mutation_line(m))
        lines.append("")

    sent = [
        m for m in report.mutations if m.action == MutationAction.SEND_DOCUMENT
    ]
    if sent:
        lines.append("Documents sent:")
        for m in sent:
            lines.append(_mutation_line(m))
        lines.append("")

    if report.errors:
        lines.append("Errors:")
        for m in report.errors:
            lines.append(f"  {m.code}: {m.error}")
        lines.append("")

    return "\n".join(lines).rstrip()


def format_events(events: list[ConnectorEvent]) -> str:
    """Format connector events, one per line."""
    if not events:
        return "No connector events recorded."
    lines = []
    for e in events:
        flag = "ERROR" if e.is_error else f"{e.percentage:3d}%"
        lines.append(
            f"{e.started_at} [{flag}] {e.event_type} "
            f"(channel {e.channel_id}): {e.message}"
        )
    return "\n".join(lines)


# ------------------------------------------------------------------
# JSON output
# ------------------------------------------------------------------


def report_to_json(report: ChangeReport) -> dict:
    """Convert a change report to a structured dict for JSON serialisation.

    Suitable for MCP ``structuredContent`` output.
    """
    mutations_list = []
    for m in report.mutations:
        entry: dict = {
            "action": m.action.value,
            "code": m.code,
            "success": m.success,
        }
        if m.error:
            entry["error"] = m.error
        if m.detail:
            entry["detail"] = m.detail
        mutations_list.append(entry)

    return {
        "event": report.event.value,
        "channel_id": report.channel_id,
        "entity_id": report.entity_id,
        "success": report.success,
        "error": report.error,
        "resource_included": report.resource_included,
        "started_at": report.started_at,
        "completed_at": report.completed_at,
        "counts": {
            "total": len(report.mutations),
            "deleted": len(report.deleted),
            "relinked": len(report.relinked),
            "imported": len(report.imported),
            "resources": len(report.resource_mutations),
            "errors": len(report.errors),
        },
        "mutations": mutations_list,
    }
