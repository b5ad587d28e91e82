from __future__ import annotations

import logging
import os
import tempfile
from pathlib import Path

from pydantic import ValidationError

from loopwright.models import (
    PHASE_ORDER,
    PHASE_TITLES,
    ItemStatus,
    Phase,
    PhaseCursor,
    StoryCursor,
    WorkflowRecord,
)
from loopwright.state.frontmatter import FrontmatterError, dumps_document, loads_document

logger = logging.getLogger(__name__)

DEFAULT_STATE_PATH = Path(".loopwright") / "workflow.local.md"

_STATUS_MARKS = {
    ItemStatus.PENDING: " ",
    ItemStatus.IN_PROGRESS: "/",
    ItemStatus.COMPLETED: "x",
    ItemStatus.SKIPPED: "-",
}


def _atomic_write_text(path: Path, content: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_path = tempfile.mkstemp(dir=str(path.parent), prefix=f".{path.name}.", suffix=".tmp")
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as handle:
            handle.write(content)
            handle.flush()
            os.fsync(handle.fileno())
        os.replace(tmp_path, path)
    except BaseException:
        try:
            os.unlink(tmp_path)
        except OSError:
            pass
        raise


def _phase_progress(cursor: PhaseCursor) -> list[str]:
    current = PHASE_ORDER.index(cursor.phase)
    finished = {ItemStatus.COMPLETED, ItemStatus.SKIPPED}
    done = sum(1 for item in cursor.items if item.status in finished)
    lines: list[str] = []
    for index, phase in enumerate(PHASE_ORDER):
        if phase is Phase.COMPLETE:
            mark = "x" if cursor.phase is Phase.COMPLETE else " "
        elif index < current:
            mark = "x"
        elif index == current:
            mark = "/"
        else:
            mark = " "
        title = PHASE_TITLES[phase]
        if phase is Phase.EXECUTE:
            title = f"{title} ({done}/{len(cursor.items)})"
        lines.append(f"- [{mark}] {title}")
    return lines


def render_body(record: WorkflowRecord) -> str:
    """Human-readable progress view derived from the header.

    The body is regenerated on every save and never read back.
    """
    cursor = record.cursor
    if isinstance(cursor, StoryCursor):
        lines = ["## Story Queue"]
        if not cursor.stories:
            lines.append("No stories declared.")
        for story in cursor.stories:
            mark = "x" if story.passes else " "
            lines.append(
                f"- [{mark}] {story.identifier} (priority {story.priority}) - {story.title}"
            )
        return "\n".join(lines)

    lines = ["## Prompt Sequence"]
    if not cursor.items:
        lines.append("No prompts generated yet.")
    for item in cursor.items:
        lines.append(f"- [{_STATUS_MARKS[item.status]}] {item.identifier} - {item.label}")
    lines.append("")
    lines.append("## Phase Progress")
    lines.extend(_phase_progress(cursor))
    return "\n".join(lines)


class StateStore:
    """Reads and writes the single workflow record.

    Presence of the file is the only signal that a workflow is active. An
    unreadable file is reported as absent so a broken record never takes the
    host process down.
    """

    def __init__(self, repo_root: Path, relative_path: Path | str = DEFAULT_STATE_PATH) -> None:
        self.repo_root = repo_root.resolve()
        self.path = self.repo_root / Path(relative_path)

    def exists(self) -> bool:
        return self.path.is_file()

    def load(self) -> WorkflowRecord | None:
        try:
            text = self.path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        except (OSError, UnicodeDecodeError) as exc:
            logger.warning("Workflow state at %s is unreadable: %s", self.path, exc)
            return None

        try:
            header, _ = loads_document(text)
            return WorkflowRecord.model_validate(header)
        except FrontmatterError as exc:
            logger.warning("Workflow state at %s is malformed: %s", self.path, exc)
        except ValidationError as exc:
            logger.warning(
                "Workflow state at %s failed schema validation: %s",
                self.path,
                exc.errors(include_url=False),
            )
        return None

    def save(self, record: WorkflowRecord) -> None:
        _atomic_write_text(self.path, dumps_document(record.to_header(), render_body(record)))

    def clear(self) -> bool:
        try:
            self.path.unlink()
        except FileNotFoundError:
            return False
        except OSError as exc:
            logger.warning("Could not delete workflow state at %s: %s", self.path, exc)
            return False
        return True
