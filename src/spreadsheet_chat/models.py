"""Pydantic models for API requests and responses."""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field

from spreadsheet_chat.conversation import ConversationTurn, TurnRole
from spreadsheet_chat.services.chat_session import ChatSession, SessionState
from spreadsheet_chat.utils.exceptions import ErrorCode
from spreadsheet_chat.workbook import SheetTable, WorkbookAggregate


class HealthResponse(BaseModel):
    """Response model for health check endpoint."""

    status: str
    timestamp: str
    version: str


class ErrorDetail(BaseModel):
    """Error detail model for API error responses.

    This model provides structured error responses with:
    - Human-readable error message
    - Machine-readable error code
    - Optional additional details for debugging
    - Optional request ID for correlation
    """

    detail: str = Field(..., description="Human-readable error message")
    error_code: str | None = Field(
        default=None,
        description="Machine-readable error code (e.g., 'E1001')",
    )
    details: dict[str, Any] | None = Field(
        default=None,
        description="Additional error details for debugging",
    )
    request_id: str | None = Field(
        default=None,
        description="Request ID for error correlation",
    )

    @classmethod
    def from_error_code(
        cls,
        error_code: ErrorCode,
        detail: str,
        details: dict[str, Any] | None = None,
        request_id: str | None = None,
    ) -> "ErrorDetail":
        return cls(
            detail=detail,
            error_code=error_code.value,
            details=details,
            request_id=request_id,
        )


# =============================================================================
# Requests
# =============================================================================


class RemoteSheetRequest(BaseModel):
    """Request body for importing a published remote sheet."""

    sheet: str = Field(
        ...,
        min_length=1,
        description="Sheet id or full sheet URL",
    )


class QuestionRequest(BaseModel):
    """Request body for asking a question about the loaded workbook."""

    question: str = Field(..., description="Question about the workbook data")


# =============================================================================
# Responses
# =============================================================================


class SheetSummary(BaseModel):
    """Shape of one normalized sheet without its rows."""

    name: str
    columns: list[str]
    row_count: int

    @classmethod
    def from_sheet(cls, sheet: SheetTable) -> "SheetSummary":
        return cls(
            name=sheet.sheet_name,
            columns=list(sheet.columns),
            row_count=sheet.row_count,
        )


class WorkbookSummary(BaseModel):
    """Shape of the loaded workbook."""

    source_name: str = Field(..., description="Filename or synthesized remote name")
    sheet_count: int
    total_rows: int
    sheets: list[SheetSummary]

    @classmethod
    def from_workbook(cls, workbook: WorkbookAggregate) -> "WorkbookSummary":
        return cls(
            source_name=workbook.source_name,
            sheet_count=workbook.sheet_count,
            total_rows=workbook.total_rows,
            sheets=[SheetSummary.from_sheet(sheet) for sheet in workbook.sheets],
        )


class SheetData(SheetSummary):
    """A normalized sheet including its display-string rows."""

    rows: list[dict[str, str]]

    @classmethod
    def from_sheet(cls, sheet: SheetTable) -> "SheetData":
        return cls(
            name=sheet.sheet_name,
            columns=list(sheet.columns),
            row_count=sheet.row_count,
            rows=[dict(row) for row in sheet.rows],
        )


class WorkbookDataResponse(BaseModel):
    """Full normalized data of the loaded workbook."""

    source_name: str
    sheets: list[SheetData]

    @classmethod
    def from_workbook(cls, workbook: WorkbookAggregate) -> "WorkbookDataResponse":
        return cls(
            source_name=workbook.source_name,
            sheets=[SheetData.from_sheet(sheet) for sheet in workbook.sheets],
        )


class TurnResponse(BaseModel):
    """One conversation turn."""

    id: str = Field(..., description="Turn id, sortable by creation order")
    role: TurnRole
    content: str = Field(..., description="Markdown message text")
    timestamp: datetime
    is_greeting: bool = False

    @classmethod
    def from_turn(cls, turn: ConversationTurn) -> "TurnResponse":
        return cls(
            id=turn.id,
            role=turn.role,
            content=turn.content,
            timestamp=turn.timestamp,
            is_greeting=turn.is_greeting,
        )


class SessionCreatedResponse(BaseModel):
    """Response model for session creation."""

    session_id: str = Field(..., description="Unique identifier for the chat session")
    state: SessionState = SessionState.EMPTY


class SessionResponse(BaseModel):
    """Full view of a chat session."""

    session_id: str
    state: SessionState
    is_processing: bool = Field(..., description="True while a workbook is loading")
    is_typing: bool = Field(..., description="True while an answer is pending")
    workbook: WorkbookSummary | None = None
    turns: list[TurnResponse] = Field(default_factory=list)

    @classmethod
    def from_session(cls, session: ChatSession) -> "SessionResponse":
        workbook = session.workbook
        return cls(
            session_id=session.session_id,
            state=session.state,
            is_processing=session.is_processing,
            is_typing=session.is_typing,
            workbook=WorkbookSummary.from_workbook(workbook) if workbook else None,
            turns=[TurnResponse.from_turn(turn) for turn in session.conversation.turns],
        )
