from __future__ import annotations

import logging

from loopwright.vcs import GitRepository

logger = logging.getLogger(__name__)

LABEL_PREFIX = "loopwright"


class ProgressCommitter:
    def __init__(self, repository: GitRepository, prefix: str = LABEL_PREFIX) -> None:
        self.repository = repository
        self.prefix = prefix

    def label_for(self, description: str) -> str:
        return f"{self.prefix}: {description}"

    def commit(self, description: str) -> str | None:
        label = self.label_for(description)
        snapshot_id = self.repository.snapshot(label)
        if snapshot_id is None:
            logger.warning("No snapshot recorded for '%s'; continuing without one.", label)
        else:
            logger.info("Snapshot %s recorded: %s", snapshot_id, label)
        return snapshot_id
