"""Instruction rendering.

``render`` is a pure function: the same unit, record and context always give
byte-identical text. A resumed cycle must look exactly like a fresh one to the
stateless agent, so nothing time-dependent (clock, iteration counter) goes in.
"""

from __future__ import annotations

from dataclasses import dataclass
from functools import lru_cache
from importlib import resources

from loopwright.models import Phase, PhaseUnit, StoryCursor, StoryUnit, WorkflowRecord, WorkUnit
from loopwright.signals import format_marker

TITLE_PREFIX = "Loopwright"

_PHASE_HEADINGS = {
    Phase.PLAN: "Phase 1A: Generate Prompt Sequence Plan",
    Phase.EXPAND: "Phase 1B: Generate Execution Prompts",
    Phase.INTEGRATION_REVIEW: "Phase 3A: Integration Check",
    Phase.COMPLETENESS_REVIEW: "Phase 3B: Feature Completeness Audit",
    Phase.DOCUMENTATION: "Phase 4: Generate Documentation",
}


@dataclass(frozen=True, slots=True)
class PromptContext:
    """Everything ``render`` needs from outside the record.

    ``documents`` holds ``(name, content)`` pairs for the record's context
    paths, in declaration order. ``unit_document`` is the sequence plan while
    expanding and the current item file while executing.
    """

    history: str
    overview: str | None = None
    documents: tuple[tuple[str, str], ...] = ()
    unit_document: str | None = None
    plan_path: str = "instructions/prompt_sequence_plan.md"
    instructions_dir: str = "instructions"


@lru_cache(maxsize=None)
def load_template(name: str) -> str:
    template = resources.files("loopwright.templates").joinpath(f"{name}.md")
    return template.read_text(encoding="utf-8").strip()


def _fill(template: str, values: dict[str, str]) -> str:
    for key, value in values.items():
        template = template.replace("{" + key + "}", value)
    return template


def _reference_section(documents: tuple[tuple[str, str], ...]) -> list[str]:
    if not documents:
        return []
    lines = [
        "## Reference Documentation",
        "",
        "The following documentation is provided as context for this task:",
        "",
    ]
    for name, content in documents:
        lines.extend([f"### {name}", "", content.strip(), "", "---", ""])
    return lines


def _history_section(history: str) -> list[str]:
    return ["## Recent Git History", "```", history.strip(), "```", ""]


def _closing(marker: str) -> str:
    return f"When this is FULLY COMPLETE, output exactly: {format_marker(marker)}"


def _render_phase(unit: PhaseUnit, context: PromptContext) -> list[str]:
    overview = context.overview or "Project overview not found."
    values = {"plan_path": context.plan_path, "instructions_dir": context.instructions_dir}

    if unit.phase is Phase.EXECUTE and unit.item is not None:
        lines = [
            f"# {TITLE_PREFIX} - Phase 2: Execute Prompt {unit.item_number}/{unit.item_total}",
            "",
            f"## Current Prompt: {unit.item.identifier}",
            "",
            (context.unit_document or "Prompt file not found.").strip(),
            "",
        ]
    else:
        lines = [
            f"# {TITLE_PREFIX} - {_PHASE_HEADINGS[unit.phase]}",
            "",
            "## Project Overview",
            "",
            overview.strip(),
            "",
        ]
        if unit.phase is Phase.EXPAND:
            plan = context.unit_document or "Sequence plan not found."
            lines.extend(["## Prompt Sequence Plan", "", plan.strip(), ""])

    lines.extend(_reference_section(context.documents))
    if unit.phase is not Phase.EXPAND:
        lines.extend(_history_section(context.history))
    lines.extend(["## Instructions", "", _fill(load_template(unit.phase.value), values), ""])
    return lines


def _render_story(unit: StoryUnit, record: WorkflowRecord, context: PromptContext) -> list[str]:
    story = unit.story
    heading = f"Story {unit.position}/{unit.total}: {story.identifier} - {story.title}"
    lines = [f"# {TITLE_PREFIX} - {heading}", ""]
    if context.overview:
        lines.extend(["## Project Overview", "", context.overview.strip(), ""])
    lines.extend(["## Story", "", f"**Priority:** {story.priority}", ""])
    if story.description:
        lines.extend([story.description.strip(), ""])
    lines.append("## Acceptance Criteria")
    lines.append("")
    if story.acceptance_criteria:
        lines.extend(f"- {criterion}" for criterion in story.acceptance_criteria)
    else:
        lines.append("- No explicit criteria; the story description is the contract.")
    lines.append("")
    if story.notes:
        lines.extend(["## Notes", "", story.notes.strip(), ""])

    if isinstance(record.cursor, StoryCursor):
        lines.extend(["## Story Queue", ""])
        for entry in record.cursor.stories:
            mark = "x" if entry.passes else " "
            lines.append(f"- [{mark}] {entry.identifier} - {entry.title}")
        lines.append("")

    lines.extend(_reference_section(context.documents))
    lines.extend(_history_section(context.history))
    lines.extend(["## Instructions", "", load_template("story"), ""])
    return lines


def render(unit: WorkUnit, record: WorkflowRecord, context: PromptContext) -> str:
    if isinstance(unit, StoryUnit):
        lines = _render_story(unit, record, context)
    else:
        lines = _render_phase(unit, context)
    lines.append(_closing(unit.marker))
    return "\n".join(lines)
