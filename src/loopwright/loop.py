from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path, PurePath
from typing import Any

from pydantic import ValidationError

from loopwright.assembler import PromptContext, render
from loopwright.committer import ProgressCommitter
from loopwright.config import LoopwrightConfig, WorkflowModel
from loopwright.governor import halt_message, should_halt
from loopwright.models import (
    COMPLETE,
    Complete,
    Phase,
    PhaseCursor,
    PhaseUnit,
    StoryCursor,
    StoryDocument,
    StoryUnit,
    WorkflowRecord,
    WorkUnit,
)
from loopwright.selector import complete_unit, select_next, skip_unit
from loopwright.signals import detect
from loopwright.state import StateStore
from loopwright.vcs import GitRepository
from loopwright.workspace import Workspace

logger = logging.getLogger(__name__)


class LoopwrightError(RuntimeError):
    """Base class for command-surface errors."""


class WorkflowActiveError(LoopwrightError):
    """Raised when starting while another workflow is still active."""


class StartOptionsError(LoopwrightError):
    """Raised when start options cannot produce a runnable workflow."""


class CycleState(str, Enum):
    NO_ACTIVE_WORKFLOW = "no_active_workflow"
    RUNNING = "running"
    HALTED = "halted"
    COMPLETED = "completed"


@dataclass(slots=True)
class CycleResult:
    state: CycleState
    instruction: str | None = None
    unit: WorkUnit | None = None
    iteration: int = 0
    snapshot_id: str | None = None
    message: str = ""

    @property
    def terminal(self) -> bool:
        return self.state in {CycleState.HALTED, CycleState.COMPLETED}


@dataclass(slots=True)
class StartOptions:
    model: WorkflowModel = "phases"
    iteration_limit: int = 100
    context_paths: list[str] = field(default_factory=list)
    overview_path: str | None = None
    stories_path: str | None = None


def describe_unit(unit: WorkUnit | Complete | None) -> str:
    if isinstance(unit, PhaseUnit):
        if unit.item is not None:
            return f"Phase: {unit.phase.value} | Prompt: {unit.item_number}/{unit.item_total}"
        return f"Phase: {unit.phase.value}"
    if isinstance(unit, StoryUnit):
        return f"Story: {unit.story.identifier} ({unit.position}/{unit.total})"
    return "Complete"


class Orchestrator:
    """One trigger-to-instruction pass per call to ``run_cycle``.

    Nothing is kept in memory between cycles: every call reloads the record,
    so cancelling is just deleting the state file.
    """

    def __init__(
        self,
        store: StateStore,
        workspace: Workspace,
        repository: GitRepository,
        config: LoopwrightConfig,
        committer: ProgressCommitter | None = None,
    ) -> None:
        self.store = store
        self.workspace = workspace
        self.repository = repository
        self.config = config
        self.committer = committer or ProgressCommitter(
            repository, prefix=config.history.snapshot_prefix
        )

    @classmethod
    def from_config(cls, repo_root: Path, config: LoopwrightConfig) -> Orchestrator:
        return cls(
            store=StateStore(repo_root, config.paths.state_file),
            workspace=Workspace(repo_root, config.paths.instructions_dir),
            repository=GitRepository(repo_root, exclude_paths=[config.paths.state_file]),
            config=config,
        )

    def build_context(self, unit: WorkUnit, record: WorkflowRecord) -> PromptContext:
        documents: list[tuple[str, str]] = []
        for path in record.context_paths:
            content = self.workspace.read_text(path)
            if content is None:
                logger.warning("Context path %s not found; leaving it out.", path)
                continue
            documents.append((PurePath(path).name, content))

        overview = self.workspace.read_text(record.overview_path)
        if overview is None and isinstance(unit, PhaseUnit):
            logger.warning("Project overview %s not found.", record.overview_path)

        unit_document = None
        if isinstance(unit, PhaseUnit):
            if unit.phase is Phase.EXPAND:
                unit_document = self.workspace.read_text(self.config.paths.plan_file)
            elif unit.item is not None:
                unit_document = self.workspace.read_item(unit.item.identifier)
                if unit_document is None:
                    logger.warning("Item file %s not found.", unit.item.identifier)

        return PromptContext(
            history=self.repository.recent_history(self.config.history.recent_commits),
            overview=overview,
            documents=tuple(documents),
            unit_document=unit_document,
            plan_path=self.config.paths.plan_file,
            instructions_dir=self.config.paths.instructions_dir,
        )

    def _render(self, unit: WorkUnit, record: WorkflowRecord) -> str:
        return render(unit, record, self.build_context(unit, record))

    def _load_active(self) -> WorkflowRecord | None:
        record = self.store.load()
        if record is None or not record.active:
            return None
        return record

    def _finish(
        self,
        record: WorkflowRecord,
        state: CycleState,
        message: str,
        snapshot_id: str | None = None,
    ) -> CycleResult:
        if state is CycleState.COMPLETED and snapshot_id is None:
            snapshot_id = self.committer.commit("workflow complete")
            if snapshot_id:
                record.last_snapshot_id = snapshot_id
        record.active = False
        try:
            self.store.save(record)
        except OSError as exc:
            logger.warning("Could not persist the final record: %s", exc)
        self.store.clear()
        if state is CycleState.HALTED:
            logger.warning(message)
        else:
            logger.info(message)
        return CycleResult(
            state=state,
            iteration=record.iteration_count,
            snapshot_id=snapshot_id,
            message=message,
        )

    def _persist_and_dispatch(
        self,
        record: WorkflowRecord,
        unit: WorkUnit,
        snapshot_id: str | None,
        message: str = "",
    ) -> CycleResult:
        instruction = self._render(unit, record)
        try:
            self.store.save(record)
        except OSError as exc:
            logger.error("Could not save workflow state; not dispatching: %s", exc)
            return CycleResult(
                state=CycleState.RUNNING,
                unit=unit,
                iteration=record.iteration_count,
                snapshot_id=snapshot_id,
                message=f"State could not be saved: {exc}",
            )
        logger.info("%s | Iteration: %d", describe_unit(unit), record.iteration_count)
        return CycleResult(
            state=CycleState.RUNNING,
            instruction=instruction,
            unit=unit,
            iteration=record.iteration_count,
            snapshot_id=snapshot_id,
            message=message,
        )

    def run_cycle(self, response_text: str | None) -> CycleResult:
        """Evaluate the agent's last response and produce the next instruction."""
        record = self._load_active()
        if record is None:
            return CycleResult(state=CycleState.NO_ACTIVE_WORKFLOW, message="No active workflow.")

        record.iteration_count += 1
        unit = select_next(record)
        snapshot_id: str | None = None

        if unit is not COMPLETE:
            signal = detect(response_text, (unit.marker,))
            if signal is not None:
                description = complete_unit(
                    record, unit, self.workspace, self.config.paths.item_pattern
                )
                if description is not None:
                    snapshot_id = self.committer.commit(description)
                    if snapshot_id:
                        record.last_snapshot_id = snapshot_id
                    unit = select_next(record)

        if should_halt(record):
            return self._finish(record, CycleState.HALTED, halt_message(record), snapshot_id)
        if unit is COMPLETE:
            return self._finish(
                record, CycleState.COMPLETED, "Workflow completed successfully.", snapshot_id
            )
        return self._persist_and_dispatch(record, unit, snapshot_id)

    def current_instruction(self) -> str | None:
        record = self._load_active()
        if record is None:
            return None
        unit = select_next(record)
        if unit is COMPLETE:
            return None
        return self._render(unit, record)

    def _seed_cursor(self, options: StartOptions) -> PhaseCursor | StoryCursor:
        if options.model == "phases":
            return PhaseCursor()
        stories_path = options.stories_path or self.config.paths.stories_file
        raw = self.workspace.read_text(stories_path)
        if raw is None:
            raise StartOptionsError(f"Story file not found: {stories_path}")
        try:
            document = StoryDocument.model_validate_json(raw)
            cursor = StoryCursor(stories=document.stories)
        except ValidationError as exc:
            raise StartOptionsError(f"Story file {stories_path} is invalid: {exc}") from exc
        if not cursor.stories:
            raise StartOptionsError(f"Story file {stories_path} declares no stories.")
        return cursor

    def start(self, options: StartOptions) -> CycleResult:
        existing = self.store.load()
        if existing is not None and existing.active:
            raise WorkflowActiveError(
                f"A workflow is already active ({self.store.path}). Cancel it first."
            )
        if options.iteration_limit < 1:
            raise StartOptionsError("Iteration limit must be a positive integer.")
        if options.model not in ("phases", "stories"):
            raise StartOptionsError(f"Unknown workflow model: {options.model}")

        record = WorkflowRecord(
            iteration_limit=options.iteration_limit,
            context_paths=list(options.context_paths),
            overview_path=options.overview_path or self.config.paths.overview,
            cursor=self._seed_cursor(options),
        )
        unit = select_next(record)
        if unit is COMPLETE:
            raise StartOptionsError("Every story already passes; nothing to do.")

        summary = "\n".join(
            [
                f"Workflow started ({options.model}).",
                f"State file: {self.store.path}",
                f"Max iterations: {record.iteration_limit}",
                f"Context paths: {', '.join(record.context_paths) or 'none'}",
                f"First unit: {describe_unit(unit)}",
            ]
        )
        return self._persist_and_dispatch(record, unit, None, message=summary)

    def status(self) -> dict[str, Any]:
        record = self.store.load()
        if record is None:
            return {"active": False, "state_file": str(self.store.path)}
        unit = select_next(record)
        payload: dict[str, Any] = {
            "active": record.active,
            "state_file": str(self.store.path),
            "model": record.cursor.kind,
            "iteration": record.iteration_count,
            "iteration_limit": record.iteration_limit,
            "started_at": record.started_at.isoformat(),
            "last_snapshot_id": record.last_snapshot_id,
            "context_paths": list(record.context_paths),
            "current_unit": describe_unit(unit),
            "expected_marker": None if unit is COMPLETE else unit.marker,
        }
        cursor = record.cursor
        if isinstance(cursor, StoryCursor):
            payload["stories"] = [
                {"id": s.identifier, "priority": s.priority, "passes": s.passes}
                for s in cursor.stories
            ]
        else:
            payload["phase"] = cursor.phase.value
            payload["items"] = [
                {"id": item.identifier, "label": item.label, "status": item.status.value}
                for item in cursor.items
            ]
        return payload

    def cancel(self) -> bool:
        return self.store.clear()

    def skip(self) -> CycleResult:
        """Mark the current unit done without agent confirmation and advance."""
        record = self._load_active()
        if record is None:
            return CycleResult(state=CycleState.NO_ACTIVE_WORKFLOW, message="No active workflow.")
        unit = select_next(record)
        if unit is COMPLETE:
            return self._finish(record, CycleState.COMPLETED, "Workflow completed successfully.")

        description = skip_unit(record, unit, self.workspace, self.config.paths.item_pattern)
        if description is None:
            return self._persist_and_dispatch(
                record, unit, None, message=f"Could not skip {unit.description}."
            )
        logger.info("Skipped %s", unit.description)
        next_unit = select_next(record)
        if next_unit is COMPLETE:
            return self._finish(record, CycleState.COMPLETED, "Workflow completed successfully.")
        return self._persist_and_dispatch(
            record, next_unit, None, message=f"Skipped {unit.description}."
        )
