"""Command-line interface for shellagent."""

from __future__ import annotations

import argparse
import dataclasses
import logging
from pathlib import Path
from typing import cast

from .agent.loop import AgentLoop
from .agent.models import StepRecord
from .agent.protocol import serialize_action
from .agent.safety import SafetyConfig
from .config import AppConfig
from .history import ChatHistoryManager
from .llm.client import LLMClient

LOGGER = logging.getLogger(__name__)


class CLIArgs(argparse.Namespace):
    goal: str | None
    working_directory: str | None
    max_steps: int | None
    allowlist: bool
    no_sandbox: bool
    enable_network: bool
    timeout: int | None
    max_output_bytes: int | None
    verbose: bool


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="shellagent", description="Autonomous shell agent for a single goal"
    )
    parser.add_argument(
        "--cwd",
        dest="working_directory",
        help=(
            "Working directory the agent is confined to. "
            "Takes precedence over config/env cwd values."
        ),
    )
    parser.add_argument("--max-steps", type=int, help="Maximum number of agent steps")
    parser.add_argument(
        "--allowlist",
        action="store_true",
        help="Only run commands whose program is on the built-in allowlist",
    )
    parser.add_argument(
        "--no-sandbox",
        action="store_true",
        help="Allow commands to reference paths outside the working directory",
    )
    parser.add_argument(
        "--enable-network", action="store_true", help="Allow network tools such as curl"
    )
    parser.add_argument("--timeout", type=int, help="Per-command timeout in seconds")
    parser.add_argument(
        "--max-output-bytes", type=int, help="Truncate command output beyond this size"
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    parser.add_argument("goal", nargs="?", help="Goal for the agent to accomplish")
    return parser


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = cast(CLIArgs, parser.parse_args(argv))
    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.WARNING)
    config = AppConfig.from_env()

    goal = args.goal or input("Goal: ").strip()
    if not goal:
        print("No goal provided.")
        return 1

    configured_working_directory = (
        args.working_directory if args.working_directory is not None else config.working_directory
    )
    resolved_working_directory = (
        Path(configured_working_directory or Path.cwd()).expanduser().resolve()
    )
    if not resolved_working_directory.is_dir():
        print(f"Invalid configured cwd directory: {configured_working_directory}")
        return 1

    safety_config = _apply_safety_overrides(config, args)
    history = ChatHistoryManager(config.history_dir) if config.history_dir else None
    client = LLMClient(
        api_key=config.api_key,
        model=config.model,
        reasoning_effort=config.reasoning_effort,
        api_url=config.api_url,
    )
    loop = AgentLoop(
        client=client,
        working_directory=str(resolved_working_directory),
        max_steps=args.max_steps if args.max_steps and args.max_steps > 0 else config.max_steps,
        max_repeated_attempts=config.max_repeated_attempts,
        safety_config=safety_config,
        system_prompt=config.system_prompt,
        history=history,
        log_dir=_resolve_log_dir(config.log_dir, resolved_working_directory),
        on_step=lambda record: print(_render_step(record)),
    )

    print(f"Goal: {goal}")
    result = loop.run(goal)
    print(result.report())

    if history is not None:
        saved_to = history.save()
        LOGGER.debug("chat_history_written", extra={"path": str(saved_to)})
    return 0 if result.completed else 2


def _apply_safety_overrides(config: AppConfig, args: CLIArgs) -> SafetyConfig:
    overrides: dict[str, object] = {}
    if args.allowlist:
        overrides["allowlist_mode"] = True
    if args.no_sandbox:
        overrides["sandbox_mode"] = False
    if args.enable_network:
        overrides["enable_network"] = True
    if args.timeout and args.timeout > 0:
        overrides["timeout_seconds"] = args.timeout
    if args.max_output_bytes and args.max_output_bytes > 0:
        overrides["max_output_bytes"] = args.max_output_bytes
    return dataclasses.replace(config.safety_config(), **overrides)


def _resolve_log_dir(log_dir: str, working_directory: Path) -> Path:
    """Relative log directories live under the agent working directory."""
    path = Path(log_dir).expanduser()
    return path if path.is_absolute() else working_directory / path


def _render_step(record: StepRecord) -> str:
    lines = [f"=== Step {record.step} ==="]

    if record.action is not None:
        lines.append(f"[{record.action.name}]")
        lines.append(serialize_action(record.action))

    if record.result:
        lines.append("[result]")
        lines.append(record.result.rstrip())
    elif record.error:
        lines.append("[error]")
        lines.append(record.error)

    return "\n".join(lines)


if __name__ == "__main__":
    raise SystemExit(main())
