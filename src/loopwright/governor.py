from __future__ import annotations

from loopwright.models import WorkflowRecord


def should_halt(record: WorkflowRecord) -> bool:
    return record.iteration_count >= record.iteration_limit


def halt_message(record: WorkflowRecord) -> str:
    return (
        f"Workflow stopped: iteration limit reached "
        f"({record.iteration_count}/{record.iteration_limit})."
    )
