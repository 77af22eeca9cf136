"""Environment-backed application configuration."""

from __future__ import annotations

import json
import os
from dataclasses import dataclass
from pathlib import Path

from shellagent.agent.safety import DEFAULT_SAFETY_CONFIG, SafetyConfig

DEFAULT_SYSTEM_PROMPT = """You are an autonomous coding agent. Your task is to complete the given goal by:
1. Analyzing the situation
2. Deciding on the next action
3. Executing commands or editing files
4. Verifying results
5. Iterating until the goal is achieved

CRITICAL RULES:
- Respond ONLY with valid JSON
- Never include markdown code blocks, explanations, or commentary outside the JSON
- Use ONLY one of these three action types:

Action 1 - Run a command:
{"action": "run", "cmd": "ls -la", "reasoning": "Need to see files"}

Action 2 - Edit a file (use unified diff format):
{"action": "edit", "file": "src/app.py", "patch": "--- a/src/app.py\\n+++ b/src/app.py\\n@@ -1,2 +1,2 @@\\n-old line\\n+new line", "reasoning": "Fix bug"}

Action 3 - Mark task as complete:
{"action": "done", "summary": "Successfully completed the task. All tests passing."}

IMPORTANT:
- Think step by step
- Verify your changes by running tests
- Always provide "reasoning" field to explain your decision
- If you encounter repeated failures, try a different approach
- When the goal is achieved, use the "done" action with a summary"""


def _to_bool(value: object, default: bool = False) -> bool:
    """Convert common env var truthy/falsy values into booleans."""
    if isinstance(value, bool):
        return value
    if not isinstance(value, str):
        return default
    normalized = value.strip().lower()
    if normalized in {"1", "true", "yes", "on"}:
        return True
    if normalized in {"0", "false", "no", "off"}:
        return False
    return default


@dataclass(slots=True)
class AppConfig:
    """Runtime settings loaded from environment variables and config files."""

    api_key: str | None
    model: str
    reasoning_effort: str | None
    api_url: str
    log_dir: str
    history_dir: str | None
    system_prompt: str
    max_steps: int
    max_repeated_attempts: int
    working_directory: str | None
    allowlist_mode: bool
    sandbox_mode: bool
    enable_network: bool
    timeout_seconds: int
    max_output_bytes: int

    @classmethod
    def from_env(cls) -> AppConfig:
        file_config = _load_preferred_file_config()
        openai_from_file = file_config.get("openai")
        openai_config = openai_from_file if isinstance(openai_from_file, dict) else {}
        safety_from_file = file_config.get("safety")
        safety_config = safety_from_file if isinstance(safety_from_file, dict) else {}

        return cls(
            api_key=(
                os.getenv("SHELLAGENT_OPENAI_API_KEY")
                or os.getenv("SHELLAGENT_API_KEY")
                or _to_optional_string(openai_config.get("api_key"))
                or _to_optional_string(file_config.get("api_key"))
            ),
            model=(
                os.getenv("SHELLAGENT_MODEL")
                or _to_optional_string(file_config.get("model"))
                or "gpt-4.1-mini"
            ),
            reasoning_effort=(
                os.getenv("SHELLAGENT_REASONING_EFFORT")
                or _to_optional_string(file_config.get("reasoning_effort"))
            ),
            api_url=(
                os.getenv("SHELLAGENT_API_URL")
                or _to_optional_string(openai_config.get("api_url"))
                or "https://api.openai.com/v1/responses"
            ),
            log_dir=(
                os.getenv("SHELLAGENT_LOG_DIR")
                or _to_optional_string(file_config.get("log_dir"))
                or "logs"
            ),
            history_dir=(
                os.getenv("SHELLAGENT_HISTORY_DIR")
                or _to_optional_string(file_config.get("history_dir"))
            ),
            system_prompt=(
                os.getenv("SHELLAGENT_SYSTEM_PROMPT")
                or _to_optional_string(file_config.get("system_prompt"))
                or DEFAULT_SYSTEM_PROMPT
            ),
            max_steps=_to_positive_int(
                os.getenv("SHELLAGENT_MAX_STEPS") or file_config.get("max_steps"),
                default=20,
            ),
            max_repeated_attempts=_to_positive_int(
                os.getenv("SHELLAGENT_MAX_REPEATED_ATTEMPTS")
                or file_config.get("max_repeated_attempts"),
                default=3,
            ),
            working_directory=(
                os.getenv("SHELLAGENT_CWD") or _to_optional_string(file_config.get("cwd"))
            ),
            allowlist_mode=_to_bool(
                os.getenv("SHELLAGENT_ALLOWLIST_MODE", safety_config.get("allowlist_mode")),
                default=DEFAULT_SAFETY_CONFIG.allowlist_mode,
            ),
            sandbox_mode=_to_bool(
                os.getenv("SHELLAGENT_SANDBOX_MODE", safety_config.get("sandbox_mode")),
                default=DEFAULT_SAFETY_CONFIG.sandbox_mode,
            ),
            enable_network=_to_bool(
                os.getenv("SHELLAGENT_ENABLE_NETWORK", safety_config.get("enable_network")),
                default=DEFAULT_SAFETY_CONFIG.enable_network,
            ),
            timeout_seconds=_to_positive_int(
                os.getenv("SHELLAGENT_TIMEOUT_SECONDS") or safety_config.get("timeout_seconds"),
                default=DEFAULT_SAFETY_CONFIG.timeout_seconds,
            ),
            max_output_bytes=_to_positive_int(
                os.getenv("SHELLAGENT_MAX_OUTPUT_BYTES")
                or safety_config.get("max_output_bytes"),
                default=DEFAULT_SAFETY_CONFIG.max_output_bytes,
            ),
        )

    def safety_config(self) -> SafetyConfig:
        return SafetyConfig(
            allowlist_mode=self.allowlist_mode,
            sandbox_mode=self.sandbox_mode,
            max_output_bytes=self.max_output_bytes,
            timeout_seconds=self.timeout_seconds,
            enable_network=self.enable_network,
        )


def _to_optional_string(value: object) -> str | None:
    if isinstance(value, str) and value.strip():
        return value.strip()
    return None


def _load_file_config(path_value: str) -> dict[str, object]:
    path = Path(path_value)
    if not path.exists() or not path.is_file():
        return {}
    try:
        with path.open("r", encoding="utf-8") as fh:
            parsed = json.load(fh)
    except (OSError, json.JSONDecodeError):
        return {}
    if isinstance(parsed, dict):
        return parsed
    return {}


def _load_preferred_file_config() -> dict[str, object]:
    explicit_path = os.getenv("SHELLAGENT_CONFIG_FILE")
    if explicit_path:
        return _load_file_config(explicit_path)

    shared_config = _load_file_config("shellagent.config.json")
    local_override = _load_file_config("shellagent.config.local.json")
    return _merge_dicts(shared_config, local_override)


def _merge_dicts(base: dict[str, object], override: dict[str, object]) -> dict[str, object]:
    merged: dict[str, object] = dict(base)
    for key, value in override.items():
        base_value = merged.get(key)
        if isinstance(base_value, dict) and isinstance(value, dict):
            merged[key] = _merge_dicts(base_value, value)
        else:
            merged[key] = value
    return merged


def _to_positive_int(value: object, *, default: int) -> int:
    if isinstance(value, bool):
        return default
    if isinstance(value, int):
        return value if value > 0 else default
    if isinstance(value, str):
        try:
            parsed = int(value.strip())
        except ValueError:
            return default
        return parsed if parsed > 0 else default
    return default
