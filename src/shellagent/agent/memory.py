"""Append-only agent memory rendered into a bounded prompt context."""

from __future__ import annotations

from shellagent.agent.models import ContextEntry

MAX_VISIBLE_STEPS = 10
KEEP_INITIAL_STEPS = 2
KEEP_RECENT_STEPS = 6
MAX_RESULT_CHARS = 500


class AgentMemory:
    """Goal/action/result log with head/tail windowing for long histories."""

    def __init__(self) -> None:
        self._entries: list[ContextEntry] = []

    @property
    def entries(self) -> tuple[ContextEntry, ...]:
        return tuple(self._entries)

    def add_user_goal(self, goal: str) -> None:
        self._entries.append(ContextEntry(kind="user_goal", content=goal))

    def add_action(self, action: str, step: int) -> None:
        self._entries.append(ContextEntry(kind="action", content=action, step=step))

    def add_result(self, result: str, step: int) -> None:
        self._entries.append(ContextEntry(kind="result", content=result, step=step))

    def build_context(self) -> str:
        """Render the latest goal and step history.

        With more than ``MAX_VISIBLE_STEPS`` steps only the first
        ``KEEP_INITIAL_STEPS`` and last ``KEEP_RECENT_STEPS`` are shown, preceded
        by a marker naming how many were omitted.
        """
        parts: list[str] = []

        goal = next(
            (entry for entry in reversed(self._entries) if entry.kind == "user_goal"), None
        )
        if goal is not None:
            parts.append(f"# Task\n{goal.content}\n")

        steps: dict[int, dict[str, str | None]] = {}
        for entry in self._entries:
            if entry.step is None:
                continue
            group = steps.setdefault(entry.step, {"action": "", "result": None})
            if entry.kind == "action":
                group["action"] = entry.content
            elif entry.kind == "result":
                group["result"] = entry.content

        if steps:
            parts.append("# Previous Steps\n")
            ordered = sorted(steps.items())
            if len(ordered) > MAX_VISIBLE_STEPS:
                omitted = len(ordered) - KEEP_INITIAL_STEPS - KEEP_RECENT_STEPS
                parts.append(
                    f"[{omitted} steps omitted; showing first {KEEP_INITIAL_STEPS} and last "
                    f"{KEEP_RECENT_STEPS} steps of {len(ordered)} total]\n\n"
                )
                ordered = ordered[:KEEP_INITIAL_STEPS] + ordered[-KEEP_RECENT_STEPS:]

            for step_number, group in ordered:
                parts.append(f"## Step {step_number}\n")
                parts.append(f"Action: {group['action']}\n")
                if group["result"]:
                    parts.append(f"Result: {_truncate(group['result'], MAX_RESULT_CHARS)}\n")
                parts.append("\n")

        return "".join(parts)

    def size(self) -> int:
        return len(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    def clear(self) -> None:
        self._entries.clear()


def _truncate(text: str, max_chars: int) -> str:
    if len(text) <= max_chars:
        return text
    return f"{text[:max_chars]}...[truncated {len(text) - max_chars} chars]"
