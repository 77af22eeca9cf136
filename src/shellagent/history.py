"""Chat history records and their JSON persistence."""

from __future__ import annotations

import json
import logging
from dataclasses import asdict, dataclass, field
from datetime import datetime
from pathlib import Path

LOGGER = logging.getLogger(__name__)


@dataclass(slots=True)
class PromptAndAnswer:
    """One prompt sent to the model and the raw answer it returned."""

    mode: str
    model: str
    prompt: str
    answer: str


@dataclass(slots=True)
class ChatHistory:
    date: str = ""
    dialogue: list[PromptAndAnswer] = field(default_factory=list)


class ChatHistoryManager:
    """Collects a run's dialogue and writes it to ``history_dir``."""

    def __init__(self, history_dir: str | Path) -> None:
        self.history_dir = Path(history_dir)
        self.chat_history = ChatHistory()

    def add_chat(self, chat: PromptAndAnswer) -> None:
        self.chat_history.dialogue.append(chat)

    def save(self, now: datetime | None = None) -> Path:
        timestamp = now or datetime.now()
        self.history_dir.mkdir(parents=True, exist_ok=True)
        path = self.history_dir / f"{timestamp.strftime('%Y-%m-%d-%H-%M-%S')}.json"
        self.chat_history.date = timestamp.isoformat()
        path.write_text(json.dumps(asdict(self.chat_history), indent=2), encoding="utf-8")
        LOGGER.debug(
            "chat_history_saved",
            extra={"path": str(path), "dialogue_length": len(self.chat_history.dialogue)},
        )
        return path
