from __future__ import annotations

import tomllib
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Literal

from loopwright.state.frontmatter import dumps_toml

BackendName = Literal["claude", "codex"]
WorkflowModel = Literal["phases", "stories"]


@dataclass(slots=True)
class WorkflowConfig:
    model: WorkflowModel = "phases"
    iteration_limit: int = 100
    context_paths: list[str] = field(default_factory=list)


@dataclass(slots=True)
class PathsConfig:
    state_file: str = ".loopwright/workflow.local.md"
    instructions_dir: str = "instructions"
    overview: str = "instructions/project_overview.md"
    plan_file: str = "instructions/prompt_sequence_plan.md"
    item_pattern: str = r"prompt_\d+\.md"
    stories_file: str = "prd.json"


@dataclass(slots=True)
class HistoryConfig:
    recent_commits: int = 5
    snapshot_prefix: str = "loopwright"


@dataclass(slots=True)
class AgentConfig:
    backend: BackendName = "claude"
    binary: str = ""
    timeout_seconds: float = 0.0


@dataclass(slots=True)
class LoggingConfig:
    level: str = "INFO"


@dataclass(slots=True)
class LoopwrightConfig:
    workflow: WorkflowConfig = field(default_factory=WorkflowConfig)
    paths: PathsConfig = field(default_factory=PathsConfig)
    history: HistoryConfig = field(default_factory=HistoryConfig)
    agent: AgentConfig = field(default_factory=AgentConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    @classmethod
    def default(cls) -> LoopwrightConfig:
        return cls()

    @classmethod
    def from_dict(cls, data: dict) -> LoopwrightConfig:
        return cls(
            workflow=WorkflowConfig(**data.get("workflow", {})),
            paths=PathsConfig(**data.get("paths", {})),
            history=HistoryConfig(**data.get("history", {})),
            agent=AgentConfig(**data.get("agent", {})),
            logging=LoggingConfig(**data.get("logging", {})),
        )

    def to_dict(self) -> dict:
        return asdict(self)


def load_config(path: Path) -> LoopwrightConfig:
    if not path.exists():
        return LoopwrightConfig.default()
    return LoopwrightConfig.from_dict(tomllib.loads(path.read_text(encoding="utf-8")))


def save_config(path: Path, config: LoopwrightConfig) -> None:
    path.write_text(dumps_toml(config.to_dict()), encoding="utf-8")
