"""Static safety gate for agent commands and file paths.

Checks are string and path inspection only. They are a best-effort filter in
front of the shell, not an isolation boundary.
"""

from __future__ import annotations

import os
import re
from dataclasses import dataclass

DEFAULT_DENYLIST = (
    "rm -rf /",
    "rm -rf/*",
    "rm -rf /.",
    "shutdown",
    "reboot",
    ":(){ :|:& };:",
    "mkfs",
    "dd if=",
)

DEFAULT_NETWORK_COMMANDS = (
    "curl",
    "wget",
    "ssh",
    "scp",
    "nc",
    "netcat",
    "telnet",
    "ftp",
    "rsync",
)

DEFAULT_AGENT_DENYLIST = (
    "> /dev/",
    "chmod 777",
    "chown",
    "useradd",
    "userdel",
)

DEFAULT_ALLOWLIST = (
    "ls",
    "pwd",
    "cat",
    "grep",
    "find",
    "head",
    "tail",
    "wc",
    "echo",
    "which",
    "git",
    "npm",
    "node",
    "python",
    "python3",
    "pip",
    "pip3",
    "tsc",
    "npx",
    "mkdir",
    "touch",
    "cp",
    "mv",
    "diff",
    "test",
    "mocha",
    "jest",
)

DEFAULT_SENSITIVE_PATTERNS = tuple(
    re.compile(pattern, flags)
    for pattern, flags in (
        (r"\.ssh", 0),
        (r"\.aws", 0),
        (r"\.env", 0),
        (r"password", re.IGNORECASE),
        (r"secret", re.IGNORECASE),
        (r"\.key$", 0),
        (r"\.pem$", 0),
    )
)

_ABSOLUTE_PATH_TOKEN = re.compile(r"(?:^|\s)(/\S*)")
_TRUNCATION_MARKER = "\n\n... [output truncated, {hidden} bytes hidden]"
_TRUNCATION_MARKER_PATTERN = re.compile(r"\n\n\.\.\. \[output truncated, \d+ bytes hidden\]\Z")


class SafetyError(ValueError):
    """A proposed command or path violates the safety policy."""


class DenylistedCommandError(SafetyError):
    def __init__(self, token: str) -> None:
        super().__init__(f"Command blocked by guardrails: {token}")
        self.token = token


class NetworkBlockedError(SafetyError):
    def __init__(self, tool: str) -> None:
        super().__init__(
            f"Network command '{tool}' is blocked. Enable network with --enable-network flag."
        )
        self.tool = tool


class PolicyBlockedError(SafetyError):
    def __init__(self, token: str) -> None:
        super().__init__(f"Command blocked by safety policy: contains '{token}'")
        self.token = token


class NotAllowlistedError(SafetyError):
    def __init__(self, command: str, allowlist: tuple[str, ...]) -> None:
        super().__init__(
            f"Command '{command}' is not in allowlist. Allowed commands: {', '.join(allowlist)}"
        )
        self.command = command
        self.allowlist = allowlist


class PathTraversalError(SafetyError):
    def __init__(self) -> None:
        super().__init__(
            "Path traversal detected (..). Commands must stay within working directory "
            "in sandbox mode."
        )


class OutsideSandboxError(SafetyError):
    def __init__(self, path: str, working_dir: str) -> None:
        super().__init__(
            f"Path '{path}' is outside working directory. "
            f"Sandbox mode restricts operations to {working_dir}."
        )
        self.path = path
        self.working_dir = working_dir


class SensitivePathError(SafetyError):
    def __init__(self, path: str) -> None:
        super().__init__(f"Cannot edit potentially sensitive file: {path}")
        self.path = path


@dataclass(frozen=True, slots=True)
class SafetyConfig:
    """Per-run safety switches; replace the whole object to change policy."""

    allowlist_mode: bool = False
    sandbox_mode: bool = True
    max_output_bytes: int = 10_000
    timeout_seconds: int = 30
    enable_network: bool = False


DEFAULT_SAFETY_CONFIG = SafetyConfig()


@dataclass(frozen=True, slots=True)
class SafetyPolicy:
    """Token lists and patterns consulted by :class:`SafetyValidator`."""

    denylist: tuple[str, ...] = DEFAULT_DENYLIST
    network_commands: tuple[str, ...] = DEFAULT_NETWORK_COMMANDS
    agent_denylist: tuple[str, ...] = DEFAULT_AGENT_DENYLIST
    allowlist: tuple[str, ...] = DEFAULT_ALLOWLIST
    sensitive_patterns: tuple[re.Pattern[str], ...] = DEFAULT_SENSITIVE_PATTERNS
    # `..` is tolerated in commands mentioning this tool (revision ranges).
    traversal_exempt_token: str = "git"
    device_prefix: str = "/dev/"


class SafetyValidator:
    """Decides whether a command or file path may reach the OS."""

    def __init__(self, policy: SafetyPolicy | None = None) -> None:
        self.policy = policy or SafetyPolicy()

    def validate_command(self, cmd: str, config: SafetyConfig, working_dir: str) -> None:
        """Raise a :class:`SafetyError` subclass for the first violated rule."""
        policy = self.policy
        lowered = cmd.lower()

        for token in policy.denylist:
            if token.lower() in lowered:
                raise DenylistedCommandError(token)

        if not config.enable_network:
            for tool in policy.network_commands:
                if tool.lower() in lowered:
                    raise NetworkBlockedError(tool)

        for token in policy.agent_denylist:
            if token.lower() in lowered:
                raise PolicyBlockedError(token)

        if config.allowlist_mode:
            parts = cmd.split()
            first_word = parts[0] if parts else ""
            if not any(
                first_word == allowed or first_word.endswith(f"/{allowed}")
                for allowed in policy.allowlist
            ):
                raise NotAllowlistedError(first_word, policy.allowlist)

        if config.sandbox_mode:
            if ".." in cmd and policy.traversal_exempt_token not in cmd:
                raise PathTraversalError()
            for token in _ABSOLUTE_PATH_TOKEN.findall(cmd):
                if token.startswith(policy.device_prefix):
                    continue
                if _escapes(os.path.normpath(token), working_dir):
                    raise OutsideSandboxError(token, working_dir)

    def validate_file_path(self, path: str, working_dir: str) -> None:
        """Reject paths outside ``working_dir`` or matching a sensitive pattern."""
        resolved = os.path.join(os.path.abspath(working_dir), os.path.normpath(path))
        if _escapes(os.path.normpath(resolved), working_dir):
            raise OutsideSandboxError(path, working_dir)

        for pattern in self.policy.sensitive_patterns:
            if pattern.search(path):
                raise SensitivePathError(path)


def _escapes(target: str, working_dir: str) -> bool:
    try:
        relative = os.path.relpath(target, os.path.abspath(working_dir))
    except ValueError:
        # Different drives on Windows.
        return True
    return relative.startswith("..") or os.path.isabs(relative)


_DEFAULT_VALIDATOR = SafetyValidator()


def validate_command(cmd: str, config: SafetyConfig, working_dir: str) -> None:
    _DEFAULT_VALIDATOR.validate_command(cmd, config, working_dir)


def validate_file_path(path: str, working_dir: str) -> None:
    _DEFAULT_VALIDATOR.validate_file_path(path, working_dir)


def truncate_output(text: str, max_bytes: int) -> str:
    """Cap ``text`` at ``max_bytes`` UTF-8 bytes plus a hidden-bytes marker.

    Text that already carries the marker after a prefix within the limit is
    returned unchanged, so truncating twice gives the same result.
    """
    limit = max(max_bytes, 0)
    encoded = text.encode("utf-8")
    if len(encoded) <= limit:
        return text

    marker = _TRUNCATION_MARKER_PATTERN.search(text)
    if marker and len(text[: marker.start()].encode("utf-8")) <= limit:
        return text

    kept = encoded[:limit].decode("utf-8", errors="ignore")
    return kept + _TRUNCATION_MARKER.format(hidden=len(encoded) - limit)
