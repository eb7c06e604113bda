"""Batch report formatting functions.

- ``format_sync_report`` -- per-repository lines plus aggregate counts.
- ``format_dry_run_preview`` -- planned actions grouped by action.
- ``report_to_json`` -- structured dict for MCP tool output.
"""

from __future__ import annotations

from collections import defaultdict

from .models import SyncAction, SyncReport

# ------------------------------------------------------------------
# Human-readable report
# ------------------------------------------------------------------


def format_sync_report(report: SyncReport) -> str:
    """Format a completed batch report as human-readable text.

    One line per repository (``OK`` / ``SKIP`` / ``FAIL``), then the
    aggregate count.

    Args:
        report: The completed report.

    Returns:
        Multi-line formatted string.
    """
    lines: list[str] = []

    header = f"{report.operation.capitalize()} report"
    if report.dry_run:
        header += " (DRY RUN)"
    lines.append(header)
    lines.append(f"Started: {report.started_at}")
    if report.completed_at:
        lines.append(f"Completed: {report.completed_at}")
    lines.append("")

    for r in report.results:
        if not r.success:
            marker = "FAIL"
        elif r.action == SyncAction.SKIP:
            marker = "SKIP"
        else:
            marker = "OK"
        line = f"  [{marker}] {r.name} ({r.path}): {r.action.value}"
        if r.status is not None:
            line += f" -> {r.status.value}"
        if r.error:
            line += f" - {r.error}"
        lines.append(line)
    if report.results:
        lines.append("")

    if report.removed:
        lines.append("Removed from registry (clone failed):")
        for name in report.removed:
            lines.append(f"  {name}")
        lines.append("")

    lines.append(
        f"{len(report.succeeded)}/{len(report.results)} succeeded, "
        f"{len(report.failed)} failed"
    )
    return "\n".join(lines)


# ------------------------------------------------------------------
# Dry-run preview
# ------------------------------------------------------------------


def format_dry_run_preview(report: SyncReport) -> str:
    """Format a dry-run preview grouped by action type.

    Args:
        report: A dry-run report (``dry_run=True``).

    Returns:
        Multi-line formatted string.
    """
    lines: list[str] = []
    lines.append("DRY RUN -- No changes will be made")
    lines.append("")

    groups: dict[SyncAction, list[str]] = defaultdict(list)
    blocked: list[str] = []
    for r in report.results:
        if r.success:
            groups[r.action].append(r.name)
        else:
            blocked.append(f"{r.name}: {r.error}")

    for action in SyncAction:
        if action == SyncAction.SKIP or action not in groups:
            continue
        label = action.value.upper().replace("_", " ")
        lines.append(f"[{label}]")
        for name in groups[action]:
            lines.append(f"  {name}")
        lines.append("")

    if blocked:
        lines.append("[BLOCKED]")
        for entry in blocked:
            lines.append(f"  {entry}")
        lines.append("")

    skip_count = len(groups.get(SyncAction.SKIP, []))
    if skip_count > 0:
        lines.append(f"Skipped: {skip_count} repositories")
        lines.append("")

    if not any(a != SyncAction.SKIP for a in groups) and not blocked:
        lines.append("No changes needed.")
        lines.append("")

    return "\n".join(lines).rstrip()


# ------------------------------------------------------------------
# JSON output
# ------------------------------------------------------------------


def report_to_json(report: SyncReport) -> dict:
    """Convert a report to a structured dict for JSON serialisation.

    Suitable for MCP ``structuredContent`` output.
    """
    results_list = []
    for r in report.results:
        entry: dict = {
            "id": r.repository_id,
            "name": r.name,
            "path": r.path,
            "action": r.action.value,
            "success": r.success,
        }
        if r.error:
            entry["error"] = r.error
        if r.not_exist:
            entry["not_exist"] = True
        if r.status is not None:
            entry["status"] = r.status.value
        results_list.append(entry)

    return {
        "operation": report.operation,
        "dry_run": report.dry_run,
        "ok": report.ok,
        "started_at": report.started_at,
        "completed_at": report.completed_at,
        "counts": {
            "total": len(report.results),
            "applied": len(report.applied),
            "skipped": len(report.skipped),
            "failed": len(report.failed),
            "not_exist": len(report.not_exist),
        },
        "removed": list(report.removed),
        "results": results_list,
    }
