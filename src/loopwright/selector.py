from __future__ import annotations

import logging
import re
from pathlib import PurePath

from loopwright.models import (
    COMPLETE,
    PHASE_ORDER,
    Complete,
    ItemStatus,
    Phase,
    PhaseCursor,
    PhaseItem,
    PhaseUnit,
    StoryCursor,
    StoryUnit,
    WorkflowRecord,
    WorkUnit,
)
from loopwright.workspace import Workspace

logger = logging.getLogger(__name__)

HEADING_PATTERN = re.compile(r"^\s{0,3}#{1,6}\s+(.+?)\s*#*\s*$")

_PHASE_LABELS = {
    Phase.PLAN: "prompt sequence plan generated",
    Phase.EXPAND: "execution prompts generated",
    Phase.INTEGRATION_REVIEW: "integration check complete",
    Phase.COMPLETENESS_REVIEW: "MVP readiness verified",
    Phase.DOCUMENTATION: "documentation complete",
}


def _next_phase(phase: Phase) -> Phase:
    index = PHASE_ORDER.index(phase)
    return PHASE_ORDER[min(index + 1, len(PHASE_ORDER) - 1)]


def _select_phase(cursor: PhaseCursor) -> WorkUnit | Complete:
    if cursor.phase is Phase.COMPLETE:
        return COMPLETE
    if cursor.phase is Phase.EXECUTE:
        total = len(cursor.items)
        if cursor.item_index < total:
            return PhaseUnit(
                phase=Phase.EXECUTE,
                item=cursor.items[cursor.item_index],
                item_number=cursor.item_index + 1,
                item_total=total,
            )
        return PhaseUnit(phase=Phase.INTEGRATION_REVIEW)
    return PhaseUnit(phase=cursor.phase)


def _select_story(cursor: StoryCursor) -> WorkUnit | Complete:
    pending = [
        (story.priority, index)
        for index, story in enumerate(cursor.stories)
        if not story.passes
    ]
    if not pending:
        return COMPLETE
    _, index = min(pending)
    passed = sum(1 for story in cursor.stories if story.passes)
    return StoryUnit(story=cursor.stories[index], position=passed + 1, total=len(cursor.stories))


def select_next(record: WorkflowRecord) -> WorkUnit | Complete:
    """Return the unit the agent should work on now, or ``COMPLETE``.

    Pure: the same record always selects the same unit. Stories are ordered
    by priority (lower first), ties by declaration order.
    """
    cursor = record.cursor
    if isinstance(cursor, StoryCursor):
        return _select_story(cursor)
    return _select_phase(cursor)


def item_label(identifier: str, content: str | None) -> str:
    for line in (content or "").splitlines():
        match = HEADING_PATTERN.match(line)
        if match:
            return match.group(1).strip()
    return PurePath(identifier).stem


def discover_items(workspace: Workspace, pattern: str) -> list[PhaseItem]:
    return [
        PhaseItem(identifier=name, label=item_label(name, workspace.read_item(name)))
        for name in workspace.list_generated_items(pattern)
    ]


def _finish_item(cursor: PhaseCursor, status: ItemStatus) -> str:
    item = cursor.items[cursor.item_index]
    item.status = status
    cursor.item_index += 1
    if cursor.item_index < len(cursor.items):
        cursor.items[cursor.item_index].status = ItemStatus.IN_PROGRESS
    else:
        cursor.phase = Phase.INTEGRATION_REVIEW
    verb = "skipped" if status is ItemStatus.SKIPPED else "completed"
    return f"{verb} {item.identifier}"


def _advance_phase(
    cursor: PhaseCursor,
    unit: PhaseUnit,
    workspace: Workspace,
    item_pattern: str,
    skipped: bool,
) -> str | None:
    if unit.phase is Phase.EXECUTE and cursor.item_index < len(cursor.items):
        return _finish_item(cursor, ItemStatus.SKIPPED if skipped else ItemStatus.COMPLETED)

    if unit.phase is Phase.EXPAND:
        items = discover_items(workspace, item_pattern)
        if not items:
            logger.warning(
                "No generated items matching '%s' found in %s; staying in the expand phase.",
                item_pattern,
                workspace.instructions_dir,
            )
            return None
        items[0].status = ItemStatus.IN_PROGRESS
        cursor.items = items
        cursor.item_index = 0
        cursor.phase = Phase.EXECUTE
        logger.info("Discovered %d generated items.", len(items))
        return _PHASE_LABELS[Phase.EXPAND]

    cursor.phase = _next_phase(unit.phase)
    label = _PHASE_LABELS.get(unit.phase, unit.phase.value)
    return f"skipped {unit.phase.value}" if skipped else label


def _advance_story(cursor: StoryCursor, unit: StoryUnit, skipped: bool) -> str | None:
    for story in cursor.stories:
        if story.identifier != unit.story.identifier:
            continue
        story.passes = True
        if skipped:
            note = "Skipped without agent confirmation."
            story.notes = f"{story.notes}\n{note}".strip() if story.notes else note
            return f"skipped story {story.identifier}"
        return f"completed story {story.identifier} - {story.title}"
    logger.warning("Story %s is no longer in the queue.", unit.story.identifier)
    return None


def _advance(
    record: WorkflowRecord,
    unit: WorkUnit,
    workspace: Workspace,
    item_pattern: str,
    skipped: bool,
) -> str | None:
    cursor = record.cursor
    match unit:
        case PhaseUnit() if isinstance(cursor, PhaseCursor):
            return _advance_phase(cursor, unit, workspace, item_pattern, skipped)
        case StoryUnit() if isinstance(cursor, StoryCursor):
            return _advance_story(cursor, unit, skipped)
    logger.warning("Unit %r does not belong to a %s cursor.", unit, cursor.kind)
    return None


def complete_unit(
    record: WorkflowRecord, unit: WorkUnit, workspace: Workspace, item_pattern: str
) -> str | None:
    """Move the cursor past ``unit``.

    Returns a short description for the snapshot label, or ``None`` when the
    cursor could not move (the record is left untouched in that case).
    """
    return _advance(record, unit, workspace, item_pattern, skipped=False)


def skip_unit(
    record: WorkflowRecord, unit: WorkUnit, workspace: Workspace, item_pattern: str
) -> str | None:
    return _advance(record, unit, workspace, item_pattern, skipped=True)
