"""Step-by-step orchestration of model decisions, safety checks and tools."""

from __future__ import annotations

import json
import logging
import os
from collections.abc import Callable
from datetime import datetime, timezone
from pathlib import Path

from shellagent.agent.memory import AgentMemory
from shellagent.agent.models import (
    Action,
    AgentRunResult,
    Done,
    EditFile,
    LoopState,
    RunCommand,
    StepRecord,
    ToolResult,
)
from shellagent.agent.protocol import ProtocolError, format_result, parse_action, serialize_action
from shellagent.agent.safety import DEFAULT_SAFETY_CONFIG, SafetyConfig, SafetyValidator
from shellagent.agent.tools import apply_patch, run_command
from shellagent.config import DEFAULT_SYSTEM_PROMPT
from shellagent.history import ChatHistoryManager, PromptAndAnswer
from shellagent.llm.client import LLMClient
from shellagent.shell import ShellAdapter

LOGGER = logging.getLogger(__name__)

StepObserver = Callable[[StepRecord], None]

NEXT_ACTION_PROMPT = "What is your next action? Respond with JSON only:"
STALL_SUMMARY = "Agent stopped due to repeated failures without progress."
CANCELLED_SUMMARY = "Agent run cancelled before the goal was completed."


class AgentLoop:
    """Runs the ask/parse/validate/execute/record cycle until a terminal state."""

    def __init__(
        self,
        *,
        client: LLMClient,
        working_directory: str | None = None,
        max_steps: int = 20,
        max_repeated_attempts: int = 3,
        safety_config: SafetyConfig = DEFAULT_SAFETY_CONFIG,
        system_prompt: str = DEFAULT_SYSTEM_PROMPT,
        validator: SafetyValidator | None = None,
        shell: ShellAdapter | None = None,
        memory: AgentMemory | None = None,
        history: ChatHistoryManager | None = None,
        log_dir: str | Path | None = None,
        on_step: StepObserver | None = None,
    ) -> None:
        self.client = client
        self.working_directory = os.path.abspath(working_directory or os.getcwd())
        self.max_steps = max_steps
        self.max_repeated_attempts = max_repeated_attempts
        self.safety_config = safety_config
        self.system_prompt = system_prompt
        self.validator = validator or SafetyValidator()
        self.shell = shell
        self.memory = memory or AgentMemory()
        self.history = history
        self.log_dir = Path(log_dir) if log_dir is not None else None
        self.on_step = on_step
        self.failure_history: dict[str, int] = {}
        self._memory_steps = 0
        self._cancel_requested = False

    def cancel(self) -> None:
        """Stop before the next step starts; a running command is not interrupted.

        A request made before ``run`` starts cancels that run. A request still
        pending when a run ends is cleared.
        """
        self._cancel_requested = True

    def reconfigure(self, safety_config: SafetyConfig) -> None:
        """Swap the safety policy; it applies from the next step."""
        LOGGER.info(
            "safety_reconfigured",
            extra={
                "allowlist_mode": safety_config.allowlist_mode,
                "sandbox_mode": safety_config.sandbox_mode,
                "enable_network": safety_config.enable_network,
            },
        )
        self.safety_config = safety_config

    def run(self, goal: str) -> AgentRunResult:
        self.memory.add_user_goal(goal)
        LOGGER.info("agent_started", extra={"goal": goal, "max_steps": self.max_steps})

        records: list[StepRecord] = []
        state = LoopState.RUNNING
        summary = ""
        step = 0
        while step < self.max_steps:
            if self._cancel_requested:
                state, summary = LoopState.CANCELLED, CANCELLED_SUMMARY
                break

            step += 1
            record = StepRecord(step=step)
            records.append(record)
            state, summary = self._run_step(step, record, self._memory_steps + step)
            self._append_log(record, goal=goal, state=state)
            self._notify(record)
            if state.terminal:
                break

        self._cancel_requested = False
        self._memory_steps += step
        if state is LoopState.RUNNING:
            state = LoopState.STOPPED_AT_MAX_STEPS
            summary = (
                f"Agent stopped after {self.max_steps} steps without completing the goal."
            )

        LOGGER.info(
            "agent_stopped",
            extra={"goal": goal, "steps": step, "state": state.value, "summary": summary},
        )
        return AgentRunResult(summary=summary, steps=step, state=state, records=records)

    def _run_step(
        self, step: int, record: StepRecord, memory_step: int
    ) -> tuple[LoopState, str]:
        safety_config = self.safety_config
        action: Action | None = None
        try:
            prompt = self._build_prompt()
            completion = self.client.complete(prompt)
            self._record_chat(prompt, completion)
            try:
                action = parse_action(completion)
            except ProtocolError as exc:
                LOGGER.warning("agent_protocol_error", extra={"step": step, "error": str(exc)})
                record.error = str(exc)
                return (
                    LoopState.STOPPED_ON_PROTOCOL_ERROR,
                    f"Agent stopped due to LLM protocol error: {exc}",
                )

            record.action = action
            self.memory.add_action(serialize_action(action), memory_step)
            LOGGER.info("agent_step", extra={"step": step, "action": action.name})
            if isinstance(action, Done):
                return LoopState.DONE, action.summary

            result_text = format_result(self._execute(action, safety_config))
            self.memory.add_result(result_text, memory_step)
            record.result = result_text
        except Exception as exc:  # noqa: BLE001
            LOGGER.exception("agent_step_failed", extra={"step": step})
            record.error = str(exc)
            # A result is only recorded once the step's action is in memory.
            if action is not None:
                record.result = f"Error: {exc}"
                self.memory.add_result(record.result, memory_step)

        if action is not None and self._detect_repeated_failure(action):
            LOGGER.warning("agent_stalled", extra={"step": step, "action": action.name})
            return LoopState.STALLED_ON_FAILURE, STALL_SUMMARY
        return LoopState.RUNNING, ""

    def _notify(self, record: StepRecord) -> None:
        if self.on_step is None:
            return
        try:
            self.on_step(record)
        except Exception:  # noqa: BLE001
            LOGGER.exception("agent_step_observer_failed", extra={"step": record.step})

    def _build_prompt(self) -> str:
        return f"{self.system_prompt}\n\n{self.memory.build_context()}\n\n{NEXT_ACTION_PROMPT}"

    def _execute(self, action: Action, safety_config: SafetyConfig) -> ToolResult:
        if isinstance(action, RunCommand):
            return run_command(
                action.cmd,
                safety_config,
                self.working_directory,
                validator=self.validator,
                shell=self.shell,
            )
        if isinstance(action, EditFile):
            return apply_patch(
                action.file,
                action.patch,
                self.working_directory,
                validator=self.validator,
            )
        msg = f"Unsupported action for execution: {action!r}"
        raise TypeError(msg)

    def _detect_repeated_failure(self, action: Action) -> bool:
        """Count identical actions; the ``max_repeated_attempts``-th repeat is a stall.

        The key is the full serialized action, so a different ``reasoning``
        text makes an otherwise identical action count separately.
        """
        key = serialize_action(action)
        count = self.failure_history.get(key, 0)
        self.failure_history[key] = count + 1
        return count >= self.max_repeated_attempts - 1

    def _record_chat(self, prompt: str, completion: str) -> None:
        if self.history is None:
            return
        self.history.add_chat(
            PromptAndAnswer(
                mode="agent",
                model=str(getattr(self.client, "model", "unknown")),
                prompt=prompt,
                answer=completion,
            )
        )

    def _append_log(self, record: StepRecord, *, goal: str, state: LoopState) -> None:
        if self.log_dir is None:
            return
        day_file = self.log_dir / f"session-{datetime.now(timezone.utc).date().isoformat()}.log"
        entry = {
            "log_version": 1,
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "goal": goal,
            "model": getattr(self.client, "model", None),
            "working_directory": self.working_directory,
            "step_index": record.step,
            "action": record.action.to_dict() if record.action else None,
            "result": record.result,
            "error": record.error,
            "state": state.value,
        }
        try:
            self.log_dir.mkdir(parents=True, exist_ok=True)
            with day_file.open("a", encoding="utf-8") as handle:
                handle.write(json.dumps(entry) + "\n")
        except OSError:
            LOGGER.exception(
                "agent_step_log_failed", extra={"step": record.step, "path": str(day_file)}
            )
