from __future__ import annotations

from typing import Any


def render_markdown(summary: dict[str, Any]) -> str:
    execution = summary["execution"]
    tasks = summary["tasks"]
    problems = summary["problems"]
    artifacts = summary["artifacts"]

    lines: list[str] = []
    lines.append("# Final Execution Report")
    lines.append("")
    lines.append("## Overview")
    lines.append("")
    lines.append(f"- execution_id: `{execution['id']}`")
    lines.append(f"- goal: {execution['goal'] or '(none)'}")
    lines.append(f"- strategy: `{execution['strategy']}` (parallelism {execution['parallelism']})")
    lines.append(f"- status: **{execution['status']}**")
    lines.append(f"- started: {execution['started_at']}")
    lines.append(f"- ended: {execution['ended_at']}")
    lines.append(f"- duration_sec: {execution['duration_sec']}")
    lines.append(
        f"- tokens: {execution['total_tokens']} (estimated {execution['estimated_tokens']})"
    )
    lines.append("")
    lines.append("## Task Results")
    lines.append("")
    lines.append("| id | name | tool | status | retries | tokens | duration_sec |")
    lines.append("|---|---|---|---|---:|---:|---:|")
    for row in tasks:
        lines.append(
            f"| {row['id']} | {row['name']} | {row['tool']} | {row['status']} | "
            f"{row['retries']} | {row['tokens']} | {row['duration_sec']} |"
        )
    lines.append("")
    lines.append("## Failed / Pending Details")
    lines.append("")
    if problems:
        for row in problems:
            lines.append(f"### {row['name']} `{row['id']}` ({row['status']})")
            lines.append(f"- error: {row['error'] or '(not run)'}")
            lines.append("")
    else:
        lines.append("No failed or pending tasks.")
        lines.append("")
    lines.append("## Artifacts")
    lines.append("")
    if artifacts:
        for artifact in artifacts:
            if "path" in artifact:
                lines.append(f"- `{artifact['path']}` (task: `{artifact['task_id']}`)")
            else:
                lines.append(f"- `{artifact['task_id']}`: {artifact['preview']}")
    else:
        lines.append("- (none)")
    lines.append("")
    return "\n".join(lines)
