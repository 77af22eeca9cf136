"""Strict JSON action protocol between the model and the agent loop."""

from __future__ import annotations

import json
import re

from shellagent.agent.models import Action, Done, EditFile, RunCommand, ToolResult

_FENCE_OPEN = re.compile(r"^```[A-Za-z0-9_+-]*[ \t]*\n?")
_FENCE_CLOSE = re.compile(r"\n?```\s*$")
DIAGNOSTIC_EXCERPT_CHARS = 100


class ProtocolError(ValueError):
    """The model response does not follow the action protocol."""


class InvalidJSONError(ProtocolError):
    def __init__(self, excerpt: str) -> None:
        super().__init__(f"Invalid JSON response from LLM: {excerpt}")
        self.excerpt = excerpt


class MissingActionError(ProtocolError):
    def __init__(self) -> None:
        super().__init__("Missing or invalid 'action' field in LLM response")


class MissingFieldError(ProtocolError):
    def __init__(self, action: str, field_name: str) -> None:
        super().__init__(
            f"'{action}' action requires '{field_name}' field with string value"
        )
        self.action = action
        self.field_name = field_name


class UnknownActionError(ProtocolError):
    def __init__(self, action: str) -> None:
        super().__init__(f"Unknown action type: {action}")
        self.action = action


def parse_action(raw: str) -> Action:
    """Parse raw model text into a validated action.

    One surrounding markdown code fence (with an optional language tag) is
    tolerated. Required fields must be non-empty strings; ``reasoning`` is
    kept only when it is a string.
    """
    content = _strip_code_fence(raw)
    try:
        payload = json.loads(content)
    except (json.JSONDecodeError, RecursionError) as exc:
        raise InvalidJSONError(content[:DIAGNOSTIC_EXCERPT_CHARS]) from exc

    if not isinstance(payload, dict):
        raise MissingActionError()
    discriminator = payload.get("action")
    if not isinstance(discriminator, str) or not discriminator:
        raise MissingActionError()

    action = discriminator.lower()
    if action == RunCommand.name:
        return RunCommand(
            cmd=_required_string(payload, action, "cmd"),
            reasoning=_optional_string(payload, "reasoning"),
        )
    if action == EditFile.name:
        return EditFile(
            file=_required_string(payload, action, "file"),
            patch=_required_string(payload, action, "patch"),
            reasoning=_optional_string(payload, "reasoning"),
        )
    if action == Done.name:
        return Done(summary=_required_string(payload, action, "summary"))
    raise UnknownActionError(action)


def serialize_action(action: Action) -> str:
    """Canonical text form of an action, used for memory and stall detection."""
    return json.dumps(action.to_dict(), ensure_ascii=False)


def format_result(result: ToolResult) -> str:
    """Render a tool result as the feedback text the model sees next turn."""
    if result.success:
        return f"Exit Code: {result.exit_code or 0}\nOutput:\n{result.output}"
    return f"Error: {result.error or 'Unknown error'}\nOutput:\n{result.output}"


def _strip_code_fence(raw: str) -> str:
    content = raw.strip()
    if content.startswith("```"):
        content = _FENCE_OPEN.sub("", content, count=1)
        content = _FENCE_CLOSE.sub("", content, count=1)
    return content.strip()


def _required_string(payload: dict[str, object], action: str, field_name: str) -> str:
    value = payload.get(field_name)
    if not isinstance(value, str) or not value:
        raise MissingFieldError(action, field_name)
    return value


def _optional_string(payload: dict[str, object], field_name: str) -> str | None:
    value = payload.get(field_name)
    return value if isinstance(value, str) else None
