"""Project the workbook and conversation into an analysis request."""

from __future__ import annotations

import json
from dataclasses import dataclass

from spreadsheet_chat.conversation import ConversationState, TurnRole
from spreadsheet_chat.utils.exceptions import NoDataError, ValidationError
from spreadsheet_chat.workbook import WorkbookAggregate

HUMAN_ROLE = "human"
AI_ROLE = "ai"

_ROLE_TAGS = {
    TurnRole.USER: HUMAN_ROLE,
    TurnRole.ASSISTANT: AI_ROLE,
}


@dataclass(frozen=True)
class HistoryEntry:
    """A prior turn in the collaborator's role vocabulary."""

    role: str
    text: str


@dataclass(frozen=True)
class AnalysisRequest:
    """Everything the analysis collaborator receives for one question.

    Attributes:
        question: The new user question, not repeated in ``history``.
        workbook: Snapshot the question is asked against.
        history: Prior turns, oldest first, greeting excluded.
    """

    question: str
    workbook: WorkbookAggregate
    history: tuple[HistoryEntry, ...] = ()

    def serialized_workbook(self) -> str:
        return serialize_workbook(self.workbook)


def serialize_workbook(workbook: WorkbookAggregate) -> str:
    """Serialize every sheet with its name, columns, row count and rows.

    Returns:
        A JSON document; non-ASCII text is kept as-is.
    """
    payload = {
        "source_name": workbook.source_name,
        "sheets": [
            {
                "name": sheet.sheet_name,
                "columns": list(sheet.columns),
                "row_count": sheet.row_count,
                "rows": [dict(row) for row in sheet.rows],
            }
            for sheet in workbook.sheets
        ],
    }
    return json.dumps(payload, ensure_ascii=False, indent=2)


def project_history(conversation: ConversationState) -> tuple[HistoryEntry, ...]:
    return tuple(
        HistoryEntry(role=_ROLE_TAGS[turn.role], text=turn.content)
        for turn in conversation.history_turns()
    )


def assemble_context(
    workbook: WorkbookAggregate | None,
    conversation: ConversationState,
    question: str,
) -> AnalysisRequest:
    """Build the analysis request for a new question.

    Must be called before the question's own turn is appended, so the
    question never appears twice.

    Raises:
        NoDataError: If no workbook is loaded.
        ValidationError: If the question is blank.
    """
    if workbook is None:
        raise NoDataError()
    if not question or not question.strip():
        raise ValidationError("Question must not be empty", field="question")

    return AnalysisRequest(
        question=question,
        workbook=workbook,
        history=project_history(conversation),
    )
