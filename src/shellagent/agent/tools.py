"""Tool executors: shell commands, unified-diff edits and file creation."""

from __future__ import annotations

import logging
import os
import re
import shutil
import tempfile
from pathlib import Path

from shellagent.agent.models import ToolResult
from shellagent.agent.safety import (
    SafetyConfig,
    SafetyError,
    SafetyValidator,
    truncate_output,
)
from shellagent.shell import ShellAdapter, default_shell_adapter

LOGGER = logging.getLogger(__name__)

_HUNK_HEADER = re.compile(r"^@@ -(\d+),(\d+) \+(\d+),(\d+) @@")


def run_command(
    cmd: str,
    config: SafetyConfig,
    working_dir: str,
    *,
    validator: SafetyValidator | None = None,
    shell: ShellAdapter | None = None,
) -> ToolResult:
    """Validate and run ``cmd`` in ``working_dir``.

    Rejected commands never reach the shell. Output is stdout and stderr
    merged in arrival order, capped at ``config.max_output_bytes``.
    """
    try:
        (validator or SafetyValidator()).validate_command(cmd, config, working_dir)
    except SafetyError as exc:
        LOGGER.warning("command_blocked", extra={"command": cmd, "reason": str(exc)})
        return ToolResult(success=False, output="", error=str(exc))

    adapter = shell or default_shell_adapter()
    result = adapter.execute(cmd, cwd=working_dir, timeout=config.timeout_seconds)
    output = truncate_output(result.output, config.max_output_bytes)

    if not result.executed:
        return ToolResult(success=False, output=output, error=result.error or "Failed to spawn shell")
    if result.timed_out:
        return ToolResult(
            success=False,
            output=output,
            error=result.error or f"Command timed out after {config.timeout_seconds}s",
            exit_code=result.returncode,
        )
    returncode = result.returncode or 0
    return ToolResult(success=returncode == 0, output=output, exit_code=returncode)


def apply_unified_diff(content: str, patch: str) -> str | None:
    """Apply the hunks of a single-file unified diff to ``content``.

    Hunks are spliced purely by position: ``oldStart`` from each header plus
    the running offset of earlier hunks, in the order they appear. Context and
    removed lines are not compared against the file. Headers that do not have
    the full ``@@ -a,b +c,d @@`` shape are skipped along with any preamble.
    Returns ``None`` when the patch cannot be processed.
    """
    try:
        lines = content.split("\n")
        offset = 0
        for old_start, old_count, hunk_lines in _parse_hunks(patch.split("\n")):
            replacement = [line[1:] for line in hunk_lines if line[:1] in (" ", "+")]
            start = max(old_start + offset, 0)
            lines[start : start + old_count] = replacement
            offset += len(replacement) - old_count
    except (ValueError, IndexError):
        return None
    return "\n".join(lines)


def _parse_hunks(patch_lines: list[str]) -> list[tuple[int, int, list[str]]]:
    hunks: list[tuple[int, int, list[str]]] = []
    index = 0
    while index < len(patch_lines):
        match = _HUNK_HEADER.match(patch_lines[index])
        index += 1
        if not match:
            continue
        body: list[str] = []
        while index < len(patch_lines) and not patch_lines[index].startswith("@@"):
            body.append(patch_lines[index])
            index += 1
        hunks.append((int(match.group(1)) - 1, int(match.group(2)), body))
    return hunks


def apply_patch(
    file: str,
    patch: str,
    working_dir: str,
    *,
    validator: SafetyValidator | None = None,
) -> ToolResult:
    """Patch an existing file under ``working_dir``; the file is untouched on failure."""
    try:
        (validator or SafetyValidator()).validate_file_path(file, working_dir)
    except SafetyError as exc:
        return ToolResult(success=False, output="", error=str(exc))

    full_path = Path(working_dir, file).resolve()
    if not full_path.is_file():
        return ToolResult(success=False, output="", error=f"File does not exist: {file}")

    try:
        with full_path.open("r", encoding="utf-8", newline="") as handle:
            current = handle.read()
    except (OSError, UnicodeDecodeError) as exc:
        return ToolResult(success=False, output="", error=str(exc))

    patched = apply_unified_diff(current, patch)
    if patched is None:
        return ToolResult(
            success=False,
            output="",
            error="Failed to apply patch - patch format invalid or does not match file",
        )

    try:
        _atomic_write_text(full_path, patched)
    except OSError as exc:
        return ToolResult(success=False, output="", error=str(exc))
    LOGGER.info("file_patched", extra={"file": file, "bytes": len(patched)})
    return ToolResult(success=True, output=f"Successfully edited {file}")


def create_file(
    file: str,
    content: str,
    working_dir: str,
    *,
    validator: SafetyValidator | None = None,
) -> ToolResult:
    """Create a new file under ``working_dir``; existing files are never overwritten."""
    try:
        (validator or SafetyValidator()).validate_file_path(file, working_dir)
    except SafetyError as exc:
        return ToolResult(success=False, output="", error=str(exc))

    full_path = Path(working_dir, file).resolve()
    try:
        full_path.parent.mkdir(parents=True, exist_ok=True)
        if full_path.exists():
            return ToolResult(success=False, output="", error=f"File already exists: {file}")
        with full_path.open("x", encoding="utf-8", newline="") as handle:
            handle.write(content)
    except FileExistsError:
        return ToolResult(success=False, output="", error=f"File already exists: {file}")
    except OSError as exc:
        return ToolResult(success=False, output="", error=str(exc))
    LOGGER.info("file_created", extra={"file": file, "bytes": len(content)})
    return ToolResult(success=True, output=f"Created file: {file}")


def _atomic_write_text(path: Path, content: str) -> None:
    fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", suffix=".tmp", dir=str(path.parent))
    tmp_path = Path(tmp_name)
    try:
        with os.fdopen(fd, "w", encoding="utf-8", newline="") as handle:
            handle.write(content)
            handle.flush()
            os.fsync(handle.fileno())
        shutil.copymode(path, tmp_path)
        os.replace(tmp_path, path)
    finally:
        if tmp_path.exists():
            tmp_path.unlink()
