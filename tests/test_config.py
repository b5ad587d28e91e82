import tomllib
from pathlib import Path

from loopwright import __version__
from loopwright.config import LoopwrightConfig, load_config, save_config


def test_config_roundtrip(tmp_path: Path) -> None:
    config_path = tmp_path / "loopwright.toml"
    config = LoopwrightConfig.default()
    config.workflow.model = "stories"
    config.workflow.iteration_limit = 40
    config.workflow.context_paths = ["docs/design.md", "docs/api.md"]
    config.paths.item_pattern = r"step_\d+\.md"
    config.history.recent_commits = 10
    config.agent.backend = "codex"
    config.agent.timeout_seconds = 900.5
    config.logging.level = "DEBUG"

    save_config(config_path, config)
    loaded = load_config(config_path)

    assert loaded == config


def test_missing_config_uses_defaults(tmp_path: Path) -> None:
    loaded = load_config(tmp_path / "absent.toml")

    assert loaded.workflow.model == "phases"
    assert loaded.workflow.iteration_limit == 100
    assert loaded.workflow.context_paths == []
    assert loaded.paths.state_file == ".loopwright/workflow.local.md"


def test_saved_config_has_every_section(tmp_path: Path) -> None:
    config_path = tmp_path / "loopwright.toml"
    save_config(config_path, LoopwrightConfig.default())

    parsed = tomllib.loads(config_path.read_text(encoding="utf-8"))

    assert set(parsed) == {"workflow", "paths", "history", "agent", "logging"}
    assert parsed["paths"]["item_pattern"] == r"prompt_\d+\.md"


def test_package_version_constant_matches_pyproject() -> None:
    project_root = Path(__file__).resolve().parents[1]
    pyproject = tomllib.loads((project_root / "pyproject.toml").read_text(encoding="utf-8"))

    assert __version__ == pyproject["project"]["version"]
