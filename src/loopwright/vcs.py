from __future__ import annotations

import logging
import subprocess
from pathlib import Path

logger = logging.getLogger(__name__)


class GitError(RuntimeError):
    """Raised when a git invocation fails."""


class GitRepository:
    """Thin wrapper over the git CLI for snapshots and history."""

    def __init__(
        self,
        repo_root: Path,
        *,
        exclude_paths: list[str] | None = None,
        timeout_seconds: float = 60.0,
    ) -> None:
        self.repo_root = repo_root.resolve()
        self.exclude_paths = list(exclude_paths or [])
        self.timeout_seconds = timeout_seconds

    def _run_git(self, args: list[str], check: bool = True) -> subprocess.CompletedProcess[str]:
        try:
            proc = subprocess.run(
                ["git", "--no-pager", *args],
                cwd=self.repo_root,
                text=True,
                capture_output=True,
                timeout=self.timeout_seconds,
            )
        except (OSError, subprocess.TimeoutExpired) as exc:
            raise GitError(f"git {args[0]} could not run: {exc}") from exc
        if check and proc.returncode != 0:
            raise GitError(proc.stderr.strip() or proc.stdout.strip() or f"git {args[0]} failed")
        return proc

    def is_repository(self) -> bool:
        try:
            proc = self._run_git(["rev-parse", "--is-inside-work-tree"], check=False)
        except GitError:
            return False
        return proc.returncode == 0 and proc.stdout.strip() == "true"

    def snapshot(self, label: str) -> str | None:
        """Stage the whole tree and commit it; return the short hash or ``None``."""
        try:
            pathspec = [".", *(f":(exclude){path}" for path in self.exclude_paths)]
            self._run_git(["add", "-A", "--", *pathspec])
            self._run_git(["commit", "-m", label])
            return self._run_git(["rev-parse", "--short", "HEAD"]).stdout.strip() or None
        except GitError as exc:
            logger.warning("Snapshot '%s' failed: %s", label, exc)
            return None

    def recent_history(self, count: int = 5) -> str:
        try:
            proc = self._run_git(["log", "--oneline", "-n", str(max(1, count))])
        except GitError:
            return "Git not initialized or no commits."
        return proc.stdout.strip() or "No commits yet."
