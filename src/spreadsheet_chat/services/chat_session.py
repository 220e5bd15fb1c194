"""Chat session state machine gluing ingestion, conversation and analysis.

States:
    EMPTY    no workbook loaded
    GREETED  workbook loaded, only the greeting in the conversation
    ACTIVE   at least one question asked against the current workbook

A successful ingestion moves any state to GREETED with a fresh greeting;
a question moves GREETED/ACTIVE to ACTIVE; ``reset`` returns to EMPTY.

Results of work started before a reset are discarded when they settle.
Answers to questions asked about a workbook that has since been replaced
are discarded as well.
"""

from __future__ import annotations

import asyncio
import uuid
from enum import Enum

from spreadsheet_chat.conversation import (
    ANALYSIS_FAILED_MESSAGE,
    NO_ANSWER_MESSAGE,
    ConversationState,
    ConversationTurn,
    build_greeting,
)
from spreadsheet_chat.services.analysis import AnalysisCollaborator, OpenAIAnalyst
from spreadsheet_chat.services.context_assembler import (
    AnalysisRequest,
    assemble_context,
)
from spreadsheet_chat.services.ingestion import WorkbookIngestor
from spreadsheet_chat.services.source_reader import SourceInput
from spreadsheet_chat.utils.logging import LogContext, get_logger
from spreadsheet_chat.workbook import WorkbookAggregate

logger = get_logger(__name__)


class SessionState(str, Enum):
    """Conversation lifecycle states."""

    EMPTY = "empty"
    GREETED = "greeted"
    ACTIVE = "active"


class ChatSession:
    """One user's workbook plus the conversation about it."""

    def __init__(
        self,
        session_id: str | None = None,
        ingestor: WorkbookIngestor | None = None,
        analyst: AnalysisCollaborator | None = None,
    ) -> None:
        self.session_id = session_id or str(uuid.uuid4())
        self.ingestor = ingestor or WorkbookIngestor()
        self._analyst = analyst

        self.conversation = ConversationState()
        self._workbook: WorkbookAggregate | None = None

        # Bumped by reset; supersedes every in-flight operation.
        self._epoch = 0
        # Bumped whenever a workbook is installed; supersedes pending answers.
        self._generation = 0

        self._ingestions_in_flight = 0
        self._analyses_in_flight = 0

    @property
    def analyst(self) -> AnalysisCollaborator:
        if self._analyst is None:
            self._analyst = OpenAIAnalyst()
        return self._analyst

    @property
    def workbook(self) -> WorkbookAggregate | None:
        return self._workbook

    @property
    def state(self) -> SessionState:
        if self._workbook is None:
            return SessionState.EMPTY
        if self.conversation.history_turns():
            return SessionState.ACTIVE
        return SessionState.GREETED

    @property
    def is_processing(self) -> bool:
        """True while an ingestion is running."""
        return self._ingestions_in_flight > 0

    @property
    def is_typing(self) -> bool:
        """True while an answer is being generated."""
        return self._analyses_in_flight > 0

    # ------------------------------------------------------------------ #
    # Ingestion
    # ------------------------------------------------------------------ #

    async def ingest_file(
        self, source: SourceInput, filename: str | None = None
    ) -> WorkbookAggregate | None:
        """Load a local spreadsheet and start a new conversation about it.

        Parsing runs in a worker thread. On failure the error propagates and
        the session keeps its previous workbook and conversation.

        Returns:
            The new workbook, or None if the session was reset meanwhile.
        """
        epoch = self._epoch
        self._ingestions_in_flight += 1
        try:
            with LogContext(session_id=self.session_id):
                workbook = await asyncio.to_thread(
                    self.ingestor.ingest_file, source, filename
                )
        finally:
            self._ingestions_in_flight -= 1
        return self._install(workbook, epoch)

    async def ingest_remote(self, sheet: str) -> WorkbookAggregate | None:
        """Load a remote sheet by id or URL; same contract as ``ingest_file``."""
        epoch = self._epoch
        self._ingestions_in_flight += 1
        try:
            with LogContext(session_id=self.session_id):
                workbook = await self.ingestor.ingest_remote(sheet)
        finally:
            self._ingestions_in_flight -= 1
        return self._install(workbook, epoch)

    def _install(
        self, workbook: WorkbookAggregate, epoch: int
    ) -> WorkbookAggregate | None:
        if epoch != self._epoch:
            logger.info(
                "Discarding ingestion result superseded by reset",
                session_id=self.session_id,
                source=workbook.source_name,
            )
            return None

        self._workbook = workbook
        self._generation += 1
        self.conversation.clear()
        self.conversation.append(build_greeting(workbook))
        logger.info(
            "Workbook loaded",
            session_id=self.session_id,
            source=workbook.source_name,
            sheets=workbook.sheet_count,
        )
        return workbook

    # ------------------------------------------------------------------ #
    # Questions
    # ------------------------------------------------------------------ #

    async def ask(self, question: str) -> ConversationTurn | None:
        """Ask a question about the loaded workbook.

        The user turn is appended immediately; the assistant turn is appended
        once the collaborator settles. Collaborator failures become a fixed
        apology turn instead of an error.

        Returns:
            The assistant turn, or None if it was superseded.

        Raises:
            NoDataError: If no workbook is loaded.
            ValidationError: If the question is blank.
        """
        request = assemble_context(self._workbook, self.conversation, question)
        epoch, generation = self._epoch, self._generation

        self.conversation.append(ConversationTurn.user(question))
        self._analyses_in_flight += 1
        try:
            with LogContext(session_id=self.session_id):
                content = await self._answer(request)
        finally:
            self._analyses_in_flight -= 1

        if epoch != self._epoch or generation != self._generation:
            logger.info(
                "Discarding answer superseded by reset or new workbook",
                session_id=self.session_id,
            )
            return None

        return self.conversation.append(ConversationTurn.assistant(content))

    async def _answer(self, request: AnalysisRequest) -> str:
        try:
            answer = await self.analyst.analyze(request)
        except Exception as e:
            logger.error(
                "Analysis failed",
                exc_info=True,
                session_id=self.session_id,
                error=str(e),
            )
            return ANALYSIS_FAILED_MESSAGE

        if not answer or not answer.strip():
            return NO_ANSWER_MESSAGE
        return answer

    # ------------------------------------------------------------------ #
    # Reset
    # ------------------------------------------------------------------ #

    def reset(self) -> None:
        """Drop the workbook and conversation; supersede in-flight work."""
        self._epoch += 1
        self._workbook = None
        self.conversation.clear()
        logger.info("Session reset", session_id=self.session_id)
