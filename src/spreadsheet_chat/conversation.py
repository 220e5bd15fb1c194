"""Conversation turns and the append-only conversation log."""

from __future__ import annotations

import itertools
import threading
import time
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum

from spreadsheet_chat.utils.exceptions import DuplicateTurnError
from spreadsheet_chat.workbook import WorkbookAggregate

NO_ANSWER_MESSAGE = "I couldn't generate a response."
ANALYSIS_FAILED_MESSAGE = (
    "Sorry, I encountered an error analyzing your request. Please try again."
)

_sequence = itertools.count(1)
_sequence_lock = threading.Lock()


class TurnRole(str, Enum):
    """Who authored a conversation turn."""

    USER = "user"
    ASSISTANT = "assistant"


def next_turn_id() -> str:
    """Generate a unique turn id that sorts in creation order.

    The id is a zero-padded millisecond timestamp followed by a process-wide
    sequence number, so two turns created in the same millisecond still get
    distinct, ordered ids.
    """
    with _sequence_lock:
        seq = next(_sequence)
    millis = time.time_ns() // 1_000_000
    return f"{millis:013d}-{seq:06d}"


@dataclass(frozen=True)
class ConversationTurn:
    """One message in the conversation."""

    role: TurnRole
    content: str
    id: str = field(default_factory=next_turn_id)
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))
    is_greeting: bool = False

    @classmethod
    def user(cls, content: str) -> ConversationTurn:
        return cls(role=TurnRole.USER, content=content)

    @classmethod
    def assistant(cls, content: str, *, is_greeting: bool = False) -> ConversationTurn:
        return cls(role=TurnRole.ASSISTANT, content=content, is_greeting=is_greeting)


def build_greeting(workbook: WorkbookAggregate) -> ConversationTurn:
    """Synthesize the assistant greeting announcing a freshly loaded workbook."""
    sheet_names = ", ".join(workbook.sheet_names)
    content = (
        f"Hi! I've analyzed **{workbook.source_name}**. \n\n"
        f"I found **{workbook.sheet_count} sheets**: {sheet_names}. \n\n"
        "You can ask me to analyze data from a specific sheet or cross-reference "
        'data between them (e.g., "Join data from Sheet A and Sheet B").'
    )
    return ConversationTurn.assistant(content, is_greeting=True)


class ConversationState:
    """Ordered, append-only log of conversation turns.

    Turns are never edited or removed individually; ``clear`` empties the
    whole log and is only used when the session is reset or a new workbook
    is loaded.
    """

    def __init__(self) -> None:
        self._turns: list[ConversationTurn] = []
        self._ids: set[str] = set()

    def __len__(self) -> int:
        return len(self._turns)

    @property
    def turns(self) -> tuple[ConversationTurn, ...]:
        return tuple(self._turns)

    @property
    def greeting(self) -> ConversationTurn | None:
        if self._turns and self._turns[0].is_greeting:
            return self._turns[0]
        return None

    def append(self, turn: ConversationTurn) -> ConversationTurn:
        """Append a turn.

        Raises:
            DuplicateTurnError: If a turn with the same id is already logged.
        """
        if turn.id in self._ids:
            raise DuplicateTurnError(turn.id)
        self._turns.append(turn)
        self._ids.add(turn.id)
        return turn

    def history_turns(self) -> list[ConversationTurn]:
        """All turns except the synthesized greeting, oldest first."""
        return [turn for turn in self._turns if not turn.is_greeting]

    def clear(self) -> None:
        self._turns.clear()
        self._ids.clear()
