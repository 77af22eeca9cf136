"""PowerShell adapter implementation."""

from __future__ import annotations

import shutil
import subprocess

from .base import CommandResult, ShellAdapter, normalize_output


class PowerShellAdapter(ShellAdapter):
    """Adapter for command execution via PowerShell."""

    def __init__(self, executable: str | None = None) -> None:
        self.executable = executable or _default_executable()

    @property
    def name(self) -> str:
        return "powershell"

    def execute(
        self,
        command: str,
        *,
        cwd: str | None = None,
        timeout: float | None = None,
    ) -> CommandResult:
        self.log_request(command, cwd=cwd, timeout=timeout)
        started = self.monotonic_now()
        try:
            process = subprocess.run(
                [self.executable, "-NoProfile", "-NonInteractive", "-Command", command],
                stdout=subprocess.PIPE,
                stderr=subprocess.STDOUT,
                stdin=subprocess.DEVNULL,
                cwd=cwd,
                timeout=timeout,
                check=False,
            )
            result = CommandResult(
                command=command,
                shell=self.name,
                returncode=process.returncode,
                output=normalize_output(process.stdout),
                duration_seconds=self.monotonic_now() - started,
            )
        except subprocess.TimeoutExpired as exc:
            result = CommandResult(
                command=command,
                shell=self.name,
                returncode=124,
                output=normalize_output(exc.output),
                timed_out=True,
                duration_seconds=self.monotonic_now() - started,
                error=f"Command timed out after {timeout}s",
            )
        except FileNotFoundError:
            result = CommandResult(
                command=command,
                shell=self.name,
                returncode=None,
                output="",
                executed=False,
                duration_seconds=self.monotonic_now() - started,
                error=f"{self.name} executable not found: {self.executable}",
            )

        self.log_result(result)
        return result


def _default_executable() -> str:
    if shutil.which("pwsh"):
        return "pwsh"
    return "powershell.exe"
