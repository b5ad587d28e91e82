import logging
from pathlib import Path

import pytest

from loopwright.models import (
    COMPLETE,
    ItemStatus,
    Phase,
    PhaseCursor,
    PhaseItem,
    PhaseUnit,
    Story,
    StoryCursor,
    StoryUnit,
    WorkflowRecord,
)
from loopwright.selector import (
    complete_unit,
    discover_items,
    item_label,
    select_next,
    skip_unit,
)
from loopwright.workspace import Workspace

PATTERN = r"prompt_\d+\.md"


def _story_record(*stories: tuple[str, int, bool]) -> WorkflowRecord:
    return WorkflowRecord(
        cursor=StoryCursor(
            stories=[
                Story(
                    identifier=identifier,
                    title=f"Story {identifier}",
                    priority=priority,
                    passes=passes,
                )
                for identifier, priority, passes in stories
            ]
        )
    )


def _write_items(root: Path, names: dict[str, str]) -> Workspace:
    instructions = root / "instructions"
    instructions.mkdir(parents=True, exist_ok=True)
    for name, content in names.items():
        (instructions / name).write_text(content, encoding="utf-8")
    return Workspace(root)


def test_story_selection_prefers_lowest_priority_among_failing() -> None:
    record = _story_record(("A", 2, False), ("B", 1, False), ("C", 1, True))

    unit = select_next(record)

    assert isinstance(unit, StoryUnit)
    assert unit.story.identifier == "B"
    assert unit.marker == "STORY_COMPLETE:B"
    assert (unit.position, unit.total) == (2, 3)


def test_story_ties_break_by_declaration_order() -> None:
    record = _story_record(("first", 3, False), ("second", 3, False))

    assert select_next(record).story.identifier == "first"
    assert select_next(record).story.identifier == "first"


def test_story_queue_completes_when_everything_passes(tmp_path: Path) -> None:
    record = _story_record(("A", 1, False))
    unit = select_next(record)

    description = complete_unit(record, unit, Workspace(tmp_path), PATTERN)

    assert description == "completed story A - Story A"
    assert record.cursor.stories[0].passes is True
    assert select_next(record) is COMPLETE


def test_phase_order_is_fixed(tmp_path: Path) -> None:
    workspace = _write_items(tmp_path, {"prompt_01.md": "# Setup\n"})
    record = WorkflowRecord()
    seen: list[str] = []

    unit = select_next(record)
    while unit is not COMPLETE:
        seen.append(unit.description)
        assert complete_unit(record, unit, workspace, PATTERN) is not None
        unit = select_next(record)

    assert seen == [
        "plan",
        "expand",
        "execute prompt_01.md",
        "integration_review",
        "completeness_review",
        "documentation",
    ]
    assert record.cursor.phase is Phase.COMPLETE


def test_expand_with_no_items_stays_in_place(tmp_path: Path, caplog) -> None:
    record = WorkflowRecord(cursor=PhaseCursor(phase=Phase.EXPAND))
    unit = select_next(record)

    with caplog.at_level(logging.WARNING):
        description = complete_unit(record, unit, Workspace(tmp_path), PATTERN)

    assert description is None
    assert record.cursor.phase is Phase.EXPAND
    assert record.cursor.items == []
    assert "No generated items" in caplog.text


def test_expand_discovers_items_in_natural_order(tmp_path: Path) -> None:
    workspace = _write_items(
        tmp_path,
        {
            "prompt_10.md": "# Deploy\n",
            "prompt_2.md": "Intro text\n## Data layer ##\n",
            "prompt_1.md": "no heading here",
            "notes.md": "# Not an item\n",
        },
    )
    record = WorkflowRecord(cursor=PhaseCursor(phase=Phase.EXPAND))

    complete_unit(record, select_next(record), workspace, PATTERN)

    cursor = record.cursor
    assert cursor.phase is Phase.EXECUTE
    assert [item.identifier for item in cursor.items] == [
        "prompt_1.md",
        "prompt_2.md",
        "prompt_10.md",
    ]
    assert [item.label for item in cursor.items] == ["prompt_1", "Data layer", "Deploy"]
    assert [item.status for item in cursor.items] == [
        ItemStatus.IN_PROGRESS,
        ItemStatus.PENDING,
        ItemStatus.PENDING,
    ]


def test_execute_units_walk_items_forward(tmp_path: Path) -> None:
    record = WorkflowRecord(
        cursor=PhaseCursor(
            phase=Phase.EXECUTE,
            items=[
                PhaseItem(identifier="prompt_01.md", status=ItemStatus.IN_PROGRESS),
                PhaseItem(identifier="prompt_02.md"),
            ],
        )
    )
    workspace = Workspace(tmp_path)

    first = select_next(record)
    assert isinstance(first, PhaseUnit)
    assert (first.item.identifier, first.item_number, first.item_total) == ("prompt_01.md", 1, 2)

    assert skip_unit(record, first, workspace, PATTERN) == "skipped prompt_01.md"
    second = select_next(record)
    assert second.item.identifier == "prompt_02.md"
    assert record.cursor.items[0].status is ItemStatus.SKIPPED
    assert record.cursor.items[1].status is ItemStatus.IN_PROGRESS

    assert complete_unit(record, second, workspace, PATTERN) == "completed prompt_02.md"
    assert record.cursor.items[1].status is ItemStatus.COMPLETED
    assert record.cursor.item_index == 2
    assert select_next(record) == PhaseUnit(phase=Phase.INTEGRATION_REVIEW)


def test_skipping_a_story_records_a_note(tmp_path: Path) -> None:
    record = _story_record(("A", 1, False), ("B", 2, False))

    description = skip_unit(record, select_next(record), Workspace(tmp_path), PATTERN)

    assert description == "skipped story A"
    assert record.cursor.stories[0].passes is True
    assert "Skipped" in record.cursor.stories[0].notes
    assert select_next(record).story.identifier == "B"


def test_selection_is_deterministic_for_equal_records() -> None:
    first = _story_record(("X", 5, False), ("Y", 4, False), ("Z", 4, False))
    second = first.model_copy(deep=True)

    assert select_next(first) == select_next(second)


@pytest.mark.parametrize(
    ("content", "expected"),
    [
        ("# Prompt 01: Setup\nbody", "Prompt 01: Setup"),
        ("preamble\n### Auth ###\n", "Auth"),
        (None, "prompt_07"),
        ("plain text only", "prompt_07"),
    ],
)
def test_item_label(content: str | None, expected: str) -> None:
    assert item_label("prompt_07.md", content) == expected


def test_discover_items_without_instructions_dir(tmp_path: Path) -> None:
    assert discover_items(Workspace(tmp_path), PATTERN) == []


def test_discover_items_ignores_sequence_plan_and_sorts_naturally(tmp_path: Path) -> None:
    instructions = tmp_path / "instructions"
    instructions.mkdir()
    for name in (
        "prompt_sequence_plan.md",
        "project_overview.md",
        "prompt_10.md",
        "prompt_2.md",
        "prompt_01.md",
        "prompt_03.md.bak",
    ):
        (instructions / name).write_text(f"# {name}\n", encoding="utf-8")

    items = discover_items(Workspace(tmp_path), PATTERN)

    assert [item.identifier for item in items] == ["prompt_01.md", "prompt_2.md", "prompt_10.md"]
