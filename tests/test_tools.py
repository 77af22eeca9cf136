from __future__ import annotations

import os
import subprocess
from types import SimpleNamespace

import pytest

from shellagent.agent import tools
from shellagent.agent.safety import SafetyConfig
from shellagent.agent.tools import apply_patch, apply_unified_diff, create_file, run_command
from shellagent.shell import BashAdapter, CommandResult


class FakeShell:
    name = "fake"

    def __init__(self, result: CommandResult | None = None) -> None:
        self.calls: list[tuple[str, str | None, float | None]] = []
        self.result = result

    def execute(
        self, command: str, *, cwd: str | None = None, timeout: float | None = None
    ) -> CommandResult:
        self.calls.append((command, cwd, timeout))
        return self.result or CommandResult(
            command=command, shell=self.name, returncode=0, output="ok"
        )


def test_run_command_blocked_never_reaches_shell(tmp_path) -> None:
    shell = FakeShell()

    result = run_command("rm -rf /", SafetyConfig(), str(tmp_path), shell=shell)

    assert shell.calls == []
    assert result.success is False
    assert result.output == ""
    assert result.error == "Command blocked by guardrails: rm -rf /"
    assert result.exit_code is None


def test_run_command_passes_cwd_and_timeout(tmp_path) -> None:
    shell = FakeShell()

    result = run_command("ls", SafetyConfig(timeout_seconds=7), str(tmp_path), shell=shell)

    assert shell.calls == [("ls", str(tmp_path), 7)]
    assert result.success is True
    assert result.exit_code == 0
    assert result.output == "ok"


def test_run_command_truncates_output(tmp_path) -> None:
    shell = FakeShell(CommandResult(command="ls", shell="fake", returncode=0, output="x" * 20))

    result = run_command("ls", SafetyConfig(max_output_bytes=5), str(tmp_path), shell=shell)

    assert result.output.startswith("xxxxx\n\n")
    assert "15 bytes hidden" in result.output


def test_run_command_non_zero_exit(tmp_path) -> None:
    shell = FakeShell(CommandResult(command="ls", shell="fake", returncode=2, output="nope"))

    result = run_command("ls missing", SafetyConfig(), str(tmp_path), shell=shell)

    assert result.success is False
    assert result.exit_code == 2
    assert result.output == "nope"


def test_run_command_spawn_failure(tmp_path) -> None:
    shell = BashAdapter(executable=str(tmp_path / "missing-shell"))

    result = run_command("ls", SafetyConfig(), str(tmp_path), shell=shell)

    assert result.success is False
    assert result.exit_code is None
    assert result.error


def test_run_command_timeout(tmp_path, monkeypatch: pytest.MonkeyPatch) -> None:
    def fake_run(*args: object, **kwargs: object) -> SimpleNamespace:
        assert kwargs["timeout"] == 1
        raise subprocess.TimeoutExpired(cmd=args[0], timeout=1, output=b"partial")

    monkeypatch.setattr(subprocess, "run", fake_run)

    result = run_command(
        "sleep 10", SafetyConfig(timeout_seconds=1), str(tmp_path), shell=BashAdapter("bash")
    )

    assert result.success is False
    assert result.exit_code == 124
    assert result.output == "partial"
    assert result.error == "Command timed out after 1s"


def test_run_command_real_shell_success(tmp_path) -> None:
    (tmp_path / "a.txt").write_text("hello", encoding="utf-8")

    result = run_command("ls", SafetyConfig(), str(tmp_path), shell=BashAdapter())

    assert result.success is True
    assert result.exit_code == 0
    assert result.output.strip() == "a.txt"


def test_run_command_real_shell_merges_stderr(tmp_path) -> None:
    result = run_command("echo oops 1>&2; exit 3", SafetyConfig(), str(tmp_path), shell=BashAdapter())

    assert result.success is False
    assert result.exit_code == 3
    assert "oops" in result.output


def test_apply_unified_diff_single_hunk_changes_line_count() -> None:
    content = "a\nb\nc\n"
    patch = "--- a/f.txt\n+++ b/f.txt\n@@ -2,1 +2,2 @@\n-b\n+B\n+B2\n"

    patched = apply_unified_diff(content, patch)

    assert patched == "a\nB\nB2\nc\n"
    assert len(patched.split("\n")) - len(content.split("\n")) == 2 - 1


def test_apply_unified_diff_keeps_context_lines() -> None:
    patched = apply_unified_diff("a\nb\nc", "@@ -1,3 +1,3 @@\n a\n-b\n+x\n c")

    assert patched == "a\nx\nc"


def test_apply_unified_diff_multiple_hunks_use_running_offset() -> None:
    content = "l1\nl2\nl3\nl4\nl5\nl6"
    patch = "@@ -1,1 +1,2 @@\n-l1\n+L1\n+L1b\n@@ -4,1 +5,1 @@\n-l4\n+L4"

    assert apply_unified_diff(content, patch) == "L1\nL1b\nl2\nl3\nL4\nl5\nl6"


def test_apply_unified_diff_does_not_verify_context() -> None:
    patched = apply_unified_diff("one\ntwo\nthree", "@@ -2,1 +2,1 @@\n-something else\n+TWO")

    assert patched == "one\nTWO\nthree"


def test_apply_unified_diff_skips_malformed_headers() -> None:
    assert apply_unified_diff("a\nb", "@@ -1 +1 @@\n-a\n+z") == "a\nb"


def test_apply_patch_writes_file(tmp_path) -> None:
    target = tmp_path / "notes.txt"
    target.write_text("a\nb\nc\n", encoding="utf-8")
    os.chmod(target, 0o644)

    result = apply_patch("notes.txt", "@@ -2,1 +2,1 @@\n-b\n+beta\n", str(tmp_path))

    assert result.success is True
    assert result.output == "Successfully edited notes.txt"
    assert target.read_text(encoding="utf-8") == "a\nbeta\nc\n"
    assert target.stat().st_mode & 0o777 == 0o644
    assert sorted(path.name for path in tmp_path.iterdir()) == ["notes.txt"]


def test_apply_patch_missing_file(tmp_path) -> None:
    result = apply_patch("missing.txt", "@@ -1,1 +1,1 @@\n-a\n+b", str(tmp_path))

    assert result.success is False
    assert result.error == "File does not exist: missing.txt"


def test_apply_patch_rejects_outside_path(tmp_path) -> None:
    result = apply_patch("../elsewhere.txt", "@@ -1,1 +1,1 @@\n-a\n+b", str(tmp_path))

    assert result.success is False
    assert "outside working directory" in (result.error or "")


def test_apply_patch_rejects_sensitive_path(tmp_path) -> None:
    (tmp_path / ".env").write_text("TOKEN=1\n", encoding="utf-8")

    result = apply_patch(".env", "@@ -1,1 +1,1 @@\n-TOKEN=1\n+TOKEN=2", str(tmp_path))

    assert result.success is False
    assert "sensitive" in (result.error or "")
    assert (tmp_path / ".env").read_text(encoding="utf-8") == "TOKEN=1\n"


def test_apply_patch_failure_leaves_file_untouched(tmp_path, monkeypatch) -> None:
    target = tmp_path / "app.py"
    target.write_text("print('hi')\n", encoding="utf-8")
    monkeypatch.setattr(tools, "apply_unified_diff", lambda content, patch: None)

    result = apply_patch("app.py", "@@ -1,1 +1,1 @@\n-x\n+y", str(tmp_path))

    assert result.success is False
    assert (result.error or "").startswith("Failed to apply patch")
    assert target.read_text(encoding="utf-8") == "print('hi')\n"


def test_create_file_makes_parent_directories(tmp_path) -> None:
    result = create_file("pkg/sub/mod.py", "x = 1\n", str(tmp_path))

    assert result.success is True
    assert (tmp_path / "pkg" / "sub" / "mod.py").read_text(encoding="utf-8") == "x = 1\n"


def test_create_file_never_overwrites(tmp_path) -> None:
    (tmp_path / "mod.py").write_text("original", encoding="utf-8")

    result = create_file("mod.py", "replacement", str(tmp_path))

    assert result.success is False
    assert result.error == "File already exists: mod.py"
    assert (tmp_path / "mod.py").read_text(encoding="utf-8") == "original"


def test_create_file_rejects_outside_path(tmp_path) -> None:
    result = create_file("../escape.py", "x", str(tmp_path / "work"))

    assert result.success is False
    assert not (tmp_path / "escape.py").exists()
