"""Data models used by the agent loop."""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import Literal, Union

ContextKind = Literal["user_goal", "action", "result"]


@dataclass(frozen=True, slots=True)
class RunCommand:
    """Run a shell command inside the working directory."""

    cmd: str
    reasoning: str | None = None

    name = "run"

    def to_dict(self) -> dict[str, str]:
        payload = {"action": self.name, "cmd": self.cmd}
        if self.reasoning is not None:
            payload["reasoning"] = self.reasoning
        return payload


@dataclass(frozen=True, slots=True)
class EditFile:
    """Apply a unified diff to an existing file."""

    file: str
    patch: str
    reasoning: str | None = None

    name = "edit"

    def to_dict(self) -> dict[str, str]:
        payload = {"action": self.name, "file": self.file, "patch": self.patch}
        if self.reasoning is not None:
            payload["reasoning"] = self.reasoning
        return payload


@dataclass(frozen=True, slots=True)
class Done:
    """Mark the goal as complete."""

    summary: str

    name = "done"

    def to_dict(self) -> dict[str, str]:
        return {"action": self.name, "summary": self.summary}


Action = Union[RunCommand, EditFile, Done]


@dataclass(frozen=True, slots=True)
class ToolResult:
    """Normalized outcome of a tool execution returned to the model."""

    success: bool
    output: str
    error: str | None = None
    exit_code: int | None = None


@dataclass(frozen=True, slots=True)
class ContextEntry:
    """One append-only memory record."""

    kind: ContextKind
    content: str
    step: int | None = None


class LoopState(enum.Enum):
    RUNNING = "running"
    DONE = "done"
    STALLED_ON_FAILURE = "stalled_on_failure"
    STOPPED_AT_MAX_STEPS = "stopped_at_max_steps"
    STOPPED_ON_PROTOCOL_ERROR = "stopped_on_protocol_error"
    CANCELLED = "cancelled"

    @property
    def terminal(self) -> bool:
        return self is not LoopState.RUNNING


@dataclass(slots=True)
class StepRecord:
    """Captured action/result data for a single loop step."""

    step: int
    action: Action | None = None
    result: str | None = None
    error: str | None = None


@dataclass(slots=True)
class AgentRunResult:
    """Final outcome of :meth:`AgentLoop.run`."""

    summary: str
    steps: int
    state: LoopState
    records: list[StepRecord] = field(default_factory=list)

    @property
    def completed(self) -> bool:
        return self.state is LoopState.DONE

    def report(self) -> str:
        status = "Completed" if self.completed else f"Incomplete ({self.state.value})"
        return "\n".join(
            [
                "Agent Summary",
                f"Total steps: {self.steps}",
                f"Status: {status}",
                "Summary:",
                self.summary,
            ]
        )
