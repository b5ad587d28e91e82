import json
from pathlib import Path

import pytest
from click.testing import CliRunner

from loopwright.cli import cli
from loopwright.config import load_config


@pytest.fixture
def project(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    monkeypatch.chdir(tmp_path)
    (tmp_path / "instructions").mkdir()
    (tmp_path / "instructions" / "project_overview.md").write_text(
        "# Recipe box\nSave and share recipes.", encoding="utf-8"
    )
    return tmp_path


def test_init_writes_config(project: Path) -> None:
    result = CliRunner().invoke(cli, ["init", "--backend", "codex"])

    assert result.exit_code == 0, result.output
    assert load_config(project / "loopwright.toml").agent.backend == "codex"
    assert "Initialized Loopwright" in result.output


def test_start_cycle_status_cancel(project: Path) -> None:
    runner = CliRunner()

    started = runner.invoke(cli, ["start", "--max-iterations", "4", "--context", "notes.md"])
    assert started.exit_code == 0, started.output
    assert "Save and share recipes." in started.output
    assert "<promise>SEQUENCE_PLAN_COMPLETE</promise>" in started.output

    again = runner.invoke(cli, ["start"])
    assert again.exit_code != 0
    assert "already active" in again.output

    advanced = runner.invoke(
        cli, ["cycle"], input="Done.\n<promise>SEQUENCE_PLAN_COMPLETE</promise>\n"
    )
    assert advanced.exit_code == 0, advanced.output
    assert "<promise>PROMPTS_GENERATED</promise>" in advanced.output

    status = runner.invoke(cli, ["status"])
    payload = json.loads(status.output)
    assert payload["phase"] == "expand"
    assert payload["iteration"] == 1
    assert payload["iteration_limit"] == 4
    assert payload["context_paths"] == ["notes.md"]

    cancelled = runner.invoke(cli, ["cancel"])
    assert "Workflow cancelled." in cancelled.output
    assert "No active workflow." in runner.invoke(cli, ["cancel"]).output


def test_cycle_reads_response_file(project: Path) -> None:
    runner = CliRunner()
    runner.invoke(cli, ["start"])
    response = project / "response.md"
    response.write_text("<promise>SEQUENCE_PLAN_COMPLETE</promise>", encoding="utf-8")

    result = runner.invoke(cli, ["cycle", "--response-file", str(response)])

    assert result.exit_code == 0, result.output
    assert "Phase 1B: Generate Execution Prompts" in result.output


def test_cycle_without_workflow(project: Path) -> None:
    result = CliRunner().invoke(cli, ["cycle"], input="")

    assert result.exit_code == 0
    assert "No active workflow." in result.output


def test_skip_and_story_start(project: Path) -> None:
    (project / "prd.json").write_text(
        json.dumps(
            {
                "userStories": [
                    {"id": "US-1", "title": "Add recipe", "priority": 1},
                    {"id": "US-2", "title": "Share recipe", "priority": 2},
                ]
            }
        ),
        encoding="utf-8",
    )
    runner = CliRunner()

    started = runner.invoke(cli, ["start", "--model", "stories"])
    assert started.exit_code == 0, started.output
    assert "<promise>STORY_COMPLETE:US-1</promise>" in started.output

    skipped = runner.invoke(cli, ["skip"])
    assert "Skipped story US-1." in skipped.output
    assert "<promise>STORY_COMPLETE:US-2</promise>" in skipped.output

    finished = runner.invoke(cli, ["skip"])
    assert "Workflow completed successfully." in finished.output
    assert not (project / ".loopwright" / "workflow.local.md").exists()


def test_run_requires_active_workflow(project: Path) -> None:
    result = CliRunner().invoke(cli, ["run"])

    assert result.exit_code != 0
    assert "No active workflow" in result.output


def test_run_drives_backend_until_halt(project: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    import loopwright.cli as cli_module

    prompts: list[str] = []

    async def fake_collect(backend, prompt, timeout_seconds=None):
        _ = backend, timeout_seconds
        prompts.append(prompt)
        return "<promise>SEQUENCE_PLAN_COMPLETE</promise>" if len(prompts) == 1 else "working"

    monkeypatch.setattr(cli_module, "collect_response", fake_collect)
    runner = CliRunner()
    runner.invoke(cli, ["start", "--max-iterations", "3"])

    result = runner.invoke(cli, ["run"])

    assert result.exit_code == 0, result.output
    assert "iteration limit" in result.output
    assert len(prompts) == 3
    assert "Phase 1A" in prompts[0]
    assert "Phase 1B" in prompts[1]
