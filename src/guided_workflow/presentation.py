"""Plain-text rendering of turns and summaries for terminal users.

The engine reports raw recorded values; turning them into display labels
happens here.
"""

from __future__ import annotations

from typing import Any

from guided_workflow.workflow.models import UiDescriptor, WorkflowSummary

_STATUS_ICONS = {"completed": "✓", "blocked": "×", "pending": "○"}


def format_option_label(value: str) -> str:
    """``"li_ion_cells"`` -> ``"Li Ion Cells"``."""

    return " ".join(word[:1].upper() + word[1:].lower() for word in value.split("_"))


def format_answer(value: Any) -> str:
    if isinstance(value, bool):
        return "Yes" if value else "No"
    if value is None:
        return "(skipped)"
    if isinstance(value, str) and "_" in value and " " not in value:
        return format_option_label(value)
    return str(value)


def format_turn(ui: UiDescriptor, *, citations: list[str] | None = None) -> str:
    lines = [f"== {ui.title} =="]
    if ui.error:
        lines.append(f"! {ui.error}")
    if ui.help:
        lines.append(ui.help)
    if citations:
        lines.append("Sources: " + ", ".join(citations))
    if ui.question:
        lines.append("")
        lines.append(ui.question)
    if ui.choices:
        for idx, choice in enumerate(ui.choices, start=1):
            lines.append(f"  {idx}. {format_option_label(choice)}")
    return "\n".join(lines)


def format_summary(summary: WorkflowSummary) -> str:
    header = "Workflow Complete" if summary.completed else "Workflow Blocked"
    lines = [header, "", summary.message, "", "Workflow Progress:"]
    for step in summary.steps:
        lines.append("")
        lines.append(f"{_STATUS_ICONS.get(step.status, '?')} {step.title}")
        for q in step.questions:
            lines.append(f"   Question: {q.label}")
            if q.answered:
                lines.append(f"   Answer: {format_answer(q.answer)}")
    return "\n".join(lines)
