from __future__ import annotations

import logging
import re
from pathlib import Path

logger = logging.getLogger(__name__)

_DIGITS = re.compile(r"(\d+)")


def natural_key(name: str) -> tuple[tuple[int, int | str], ...]:
    return tuple(
        (0, int(part)) if part.isdigit() else (1, part)
        for part in _DIGITS.split(name)
        if part
    )


class Workspace:
    """Read-only view of the generated documents under the project root."""

    def __init__(self, repo_root: Path, instructions_dir: Path | str = "instructions") -> None:
        self.repo_root = repo_root.resolve()
        self.instructions_dir = self.repo_root / Path(instructions_dir)

    def resolve(self, path: str | Path) -> Path:
        candidate = Path(path)
        if candidate.is_absolute():
            return candidate
        return self.repo_root / candidate

    def list_generated_items(self, pattern: str) -> list[str]:
        """File names in the instructions directory fully matching the regex ``pattern``.

        Names are returned in natural order so ``prompt_2`` sorts before ``prompt_10``.
        """
        matcher = re.compile(pattern)
        if not self.instructions_dir.is_dir():
            return []
        names = [
            entry.name
            for entry in self.instructions_dir.iterdir()
            if entry.is_file() and matcher.fullmatch(entry.name)
        ]
        return sorted(names, key=natural_key)

    def read_text(self, path: str | Path) -> str | None:
        target = self.resolve(path)
        try:
            return target.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        except (OSError, UnicodeDecodeError) as exc:
            logger.warning("Could not read %s: %s", target, exc)
            return None

    def read_item(self, identifier: str) -> str | None:
        return self.read_text(self.instructions_dir / identifier)
