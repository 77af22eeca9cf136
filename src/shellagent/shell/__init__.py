"""Shell adapter implementations."""

import os

from .base import CommandResult, ShellAdapter
from .bash_adapter import BashAdapter
from .powershell_adapter import PowerShellAdapter


def create_shell_adapter(shell_name: str) -> ShellAdapter:
    normalized = shell_name.strip().lower()
    if normalized in {"bash", "sh", "shell"}:
        return BashAdapter(executable="sh" if normalized == "sh" else None)
    if normalized in {"powershell", "pwsh"}:
        return PowerShellAdapter()
    msg = f"Unsupported shell adapter: {shell_name}"
    raise ValueError(msg)


def default_shell_adapter(os_name: str | None = None) -> ShellAdapter:
    """Return the adapter for the platform's default shell."""
    platform_name = os.name if os_name is None else os_name
    return create_shell_adapter("powershell" if platform_name == "nt" else "bash")


__all__ = [
    "BashAdapter",
    "CommandResult",
    "PowerShellAdapter",
    "ShellAdapter",
    "create_shell_adapter",
    "default_shell_adapter",
]
