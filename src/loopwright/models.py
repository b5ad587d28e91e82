from __future__ import annotations

from dataclasses import dataclass
from datetime import UTC, datetime
from enum import Enum
from typing import Annotated, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator


def utcnow() -> datetime:
    return datetime.now(UTC).replace(microsecond=0)


class Phase(str, Enum):
    PLAN = "plan"
    EXPAND = "expand"
    EXECUTE = "execute"
    INTEGRATION_REVIEW = "integration_review"
    COMPLETENESS_REVIEW = "completeness_review"
    DOCUMENTATION = "documentation"
    COMPLETE = "complete"


PHASE_ORDER: tuple[Phase, ...] = tuple(Phase)

PHASE_TITLES: dict[Phase, str] = {
    Phase.PLAN: "Generate Sequence Plan",
    Phase.EXPAND: "Generate Execution Prompts",
    Phase.EXECUTE: "Execute Prompts",
    Phase.INTEGRATION_REVIEW: "QA: Integration Check",
    Phase.COMPLETENESS_REVIEW: "QA: Feature Completeness",
    Phase.DOCUMENTATION: "Documentation",
    Phase.COMPLETE: "Complete",
}

PHASE_MARKERS: dict[Phase, str] = {
    Phase.PLAN: "SEQUENCE_PLAN_COMPLETE",
    Phase.EXPAND: "PROMPTS_GENERATED",
    Phase.EXECUTE: "PROMPT_COMPLETE",
    Phase.INTEGRATION_REVIEW: "INTEGRATION_CHECK_COMPLETE",
    Phase.COMPLETENESS_REVIEW: "MVP_READY",
    Phase.DOCUMENTATION: "DOCUMENTATION_COMPLETE",
}

STORY_MARKER_PREFIX = "STORY_COMPLETE:"


class ItemStatus(str, Enum):
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    SKIPPED = "skipped"


class PhaseItem(BaseModel):
    identifier: str = Field(min_length=1)
    label: str = ""
    status: ItemStatus = ItemStatus.PENDING


class PhaseCursor(BaseModel):
    kind: Literal["phases"] = "phases"
    phase: Phase = Phase.PLAN
    item_index: int = Field(default=0, ge=0)
    items: list[PhaseItem] = Field(default_factory=list)


class Story(BaseModel):
    """One entry of a story queue.

    Accepts both the snake_case field names used in the state header and the
    camelCase names used by ``prd.json`` documents.
    """

    model_config = ConfigDict(populate_by_name=True)

    identifier: str = Field(min_length=1, alias="id")
    title: str
    description: str = ""
    acceptance_criteria: list[str] = Field(default_factory=list, alias="acceptanceCriteria")
    priority: int = 0
    passes: bool = False
    notes: str = ""


class StoryCursor(BaseModel):
    kind: Literal["stories"] = "stories"
    stories: list[Story] = Field(default_factory=list)

    @field_validator("stories")
    @classmethod
    def _unique_identifiers(cls, stories: list[Story]) -> list[Story]:
        seen: set[str] = set()
        for story in stories:
            if story.identifier in seen:
                raise ValueError(f"Duplicate story identifier: {story.identifier}")
            seen.add(story.identifier)
        return stories


Cursor = Annotated[PhaseCursor | StoryCursor, Field(discriminator="kind")]


class WorkflowRecord(BaseModel):
    active: bool = True
    iteration_count: int = Field(default=0, ge=0)
    iteration_limit: int = Field(default=100, ge=1)
    started_at: datetime = Field(default_factory=utcnow)
    last_snapshot_id: str | None = None
    overview_path: str = "instructions/project_overview.md"
    context_paths: list[str] = Field(default_factory=list)
    cursor: Cursor = Field(default_factory=PhaseCursor)

    @field_validator("context_paths")
    @classmethod
    def _ordered_set(cls, paths: list[str]) -> list[str]:
        return list(dict.fromkeys(path for path in paths if path.strip()))

    def to_header(self) -> dict:
        return self.model_dump(mode="json", exclude_none=True)


class StoryDocument(BaseModel):
    """The ``prd.json`` shape a story queue is seeded from."""

    model_config = ConfigDict(populate_by_name=True)

    project: str = ""
    description: str = ""
    stories: list[Story] = Field(default_factory=list, alias="userStories")


@dataclass(frozen=True, slots=True)
class PhaseUnit:
    phase: Phase
    item: PhaseItem | None = None
    item_number: int = 0
    item_total: int = 0

    @property
    def marker(self) -> str:
        return PHASE_MARKERS[self.phase]

    @property
    def description(self) -> str:
        if self.item is not None:
            return f"{self.phase.value} {self.item.identifier}"
        return self.phase.value


@dataclass(frozen=True, slots=True)
class StoryUnit:
    story: Story
    position: int
    total: int

    @property
    def marker(self) -> str:
        return f"{STORY_MARKER_PREFIX}{self.story.identifier}"

    @property
    def description(self) -> str:
        return f"story {self.story.identifier}"


class Complete:
    __slots__ = ()

    def __repr__(self) -> str:
        return "COMPLETE"


COMPLETE = Complete()

WorkUnit = PhaseUnit | StoryUnit
