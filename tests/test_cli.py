from __future__ import annotations

import json
from pathlib import Path

import pytest

from shellagent import cli
from shellagent.agent.models import RunCommand, StepRecord
from shellagent.config import AppConfig


def _fake_config(**overrides: object) -> AppConfig:
    config = AppConfig(
        api_key=None,
        model="gpt-4.1-mini",
        reasoning_effort=None,
        api_url="https://api.openai.com/v1/responses",
        log_dir="logs",
        history_dir=None,
        system_prompt="prompt",
        max_steps=20,
        max_repeated_attempts=3,
        working_directory=None,
        allowlist_mode=False,
        sandbox_mode=True,
        enable_network=False,
        timeout_seconds=30,
        max_output_bytes=10000,
    )
    for key, value in overrides.items():
        setattr(config, key, value)
    return config


def _patch_config(monkeypatch: pytest.MonkeyPatch, config: AppConfig) -> None:
    monkeypatch.setattr(
        cli,
        "AppConfig",
        type("FakeConfig", (), {"from_env": staticmethod(lambda: config)}),
    )


class ScriptedClient:
    def __init__(self, responses: list[str], **kwargs: object) -> None:
        self.responses = list(responses)
        self.model = kwargs.get("model", "fake")

    def complete(self, prompt: str) -> str:
        return self.responses.pop(0)


def test_parser_defaults() -> None:
    args = cli.build_parser().parse_args([])

    assert args.goal is None
    assert args.working_directory is None
    assert args.max_steps is None
    assert args.allowlist is False
    assert args.no_sandbox is False
    assert args.enable_network is False


def test_parser_accepts_overrides() -> None:
    args = cli.build_parser().parse_args(
        ["--cwd", "./sandbox", "--max-steps", "5", "--allowlist", "--no-sandbox",
         "--enable-network", "--timeout", "3", "--max-output-bytes", "100", "list files"]
    )

    assert args.working_directory == "./sandbox"
    assert args.max_steps == 5
    assert args.allowlist is True
    assert args.no_sandbox is True
    assert args.enable_network is True
    assert args.timeout == 3
    assert args.max_output_bytes == 100
    assert args.goal == "list files"


def test_main_rejects_invalid_cwd(
    monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture[str]
) -> None:
    _patch_config(monkeypatch, _fake_config(working_directory="./definitely-missing-dir"))

    assert cli.main(["list files"]) == 1
    assert "Invalid configured cwd directory" in capsys.readouterr().out


def test_main_rejects_empty_goal(
    monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture[str]
) -> None:
    _patch_config(monkeypatch, _fake_config())
    monkeypatch.setattr("builtins.input", lambda _prompt: "   ")

    assert cli.main([]) == 1
    assert "No goal provided." in capsys.readouterr().out


def test_main_runs_loop_and_saves_history(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture[str]
) -> None:
    (tmp_path / "work").mkdir()
    _patch_config(
        monkeypatch,
        _fake_config(log_dir=str(tmp_path / "logs"), history_dir=str(tmp_path / "history")),
    )
    responses = [
        '{"action":"run","cmd":"rm -rf /"}',
        '{"action":"done","summary":"Nothing to do."}',
    ]
    monkeypatch.setattr(cli, "LLMClient", lambda **kwargs: ScriptedClient(responses, **kwargs))

    exit_code = cli.main(["--cwd", str(tmp_path / "work"), "clean everything"])

    out = capsys.readouterr().out
    assert exit_code == 0
    assert "=== Step 1 ===" in out
    assert "Error: Command blocked by guardrails: rm -rf /" in out
    assert "Status: Completed" in out
    assert "Nothing to do." in out
    history_files = list((tmp_path / "history").glob("*.json"))
    assert len(history_files) == 1
    assert len(json.loads(history_files[0].read_text(encoding="utf-8"))["dialogue"]) == 2


def test_main_reports_incomplete_run(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    _patch_config(monkeypatch, _fake_config(log_dir=str(tmp_path / "logs")))
    monkeypatch.setattr(
        cli, "LLMClient", lambda **kwargs: ScriptedClient(["not json"], **kwargs)
    )

    assert cli.main(["--cwd", str(tmp_path), "goal"]) == 2


def test_safety_overrides_apply_to_config() -> None:
    args = cli.build_parser().parse_args(
        ["--allowlist", "--no-sandbox", "--enable-network", "--timeout", "9", "goal"]
    )

    safety = cli._apply_safety_overrides(_fake_config(), args)

    assert safety.allowlist_mode is True
    assert safety.sandbox_mode is False
    assert safety.enable_network is True
    assert safety.timeout_seconds == 9
    assert safety.max_output_bytes == 10000


def test_render_step() -> None:
    record = StepRecord(step=2, action=RunCommand(cmd="ls"), result="Exit Code: 0\nOutput:\na\n")

    assert cli._render_step(record) == (
        '=== Step 2 ===\n[run]\n{"action": "run", "cmd": "ls"}\n[result]\nExit Code: 0\nOutput:\na'
    )


def test_render_step_with_error_only() -> None:
    record = StepRecord(step=1, error="Invalid JSON response from LLM: nope")

    assert cli._render_step(record) == (
        "=== Step 1 ===\n[error]\nInvalid JSON response from LLM: nope"
    )


def test_main_writes_relative_log_dir_under_agent_cwd(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    work = tmp_path / "work"
    work.mkdir()
    launch = tmp_path / "launch"
    launch.mkdir()
    monkeypatch.chdir(launch)
    _patch_config(monkeypatch, _fake_config(log_dir="logs"))
    monkeypatch.setattr(
        cli,
        "LLMClient",
        lambda **kwargs: ScriptedClient(['{"action":"done","summary":"ok"}'], **kwargs),
    )

    assert cli.main(["--cwd", str(work), "goal"]) == 0
    assert len(list((work / "logs").glob("session-*.log"))) == 1
    assert not (launch / "logs").exists()


def test_resolve_log_dir_keeps_absolute_paths(tmp_path: Path) -> None:
    absolute = tmp_path / "elsewhere"

    assert cli._resolve_log_dir(str(absolute), tmp_path / "work") == absolute
    assert cli._resolve_log_dir("logs", tmp_path / "work") == tmp_path / "work" / "logs"
