"""LangChain LLM integration answering questions about a workbook.

The chat session only depends on the ``AnalysisCollaborator`` protocol; the
``OpenAIAnalyst`` here is the default implementation backed by OpenAI chat
models through LangChain.
"""

import logging
import time
from typing import Protocol, runtime_checkable

from langchain_core.messages import BaseMessage
from langchain_core.prompts import ChatPromptTemplate, MessagesPlaceholder
from langchain_openai import ChatOpenAI

from spreadsheet_chat.config import settings
from spreadsheet_chat.services.context_assembler import AnalysisRequest
from spreadsheet_chat.utils.exceptions import AnalysisError
from spreadsheet_chat.utils.logging import get_logger

logger = logging.getLogger(__name__)
api_logger = get_logger(__name__)

SYSTEM_PROMPT = """You are an expert data analyst helping a user explore a spreadsheet.

The workbook "{source_name}" is provided below as JSON. Each sheet lists its
columns and rows; every value is the text exactly as displayed in the
spreadsheet (for example "$1,000" or "12/31/24").

Guidelines:
- Answer using only the data provided. If the data cannot answer the
  question, say so plainly.
- When the user asks to combine sheets, join them on matching column values
  and explain which columns you matched.
- Show calculations when you aggregate numbers.
- Format answers in Markdown; use tables for tabular results.

WORKBOOK DATA:
{workbook}"""


@runtime_checkable
class AnalysisCollaborator(Protocol):
    """Anything that can answer a question about a workbook."""

    async def analyze(self, request: AnalysisRequest) -> str | None:
        """Return the answer text, or None when there is no answer."""
        ...


class OpenAIAnalyst:
    """Answer analysis requests with an OpenAI chat model via LangChain."""

    def __init__(
        self,
        api_key: str | None = None,
        model: str | None = None,
        temperature: float | None = None,
        max_tokens: int | None = None,
    ) -> None:
        """Initialize the analyst.

        Args:
            api_key: OpenAI API key. Defaults to settings.
            model: Model name to use. Defaults to settings.openai_model.
            temperature: Sampling temperature. Defaults to settings.openai_temperature.
            max_tokens: Maximum tokens for response. Defaults to settings.openai_max_tokens.
        """
        self.api_key = api_key if api_key is not None else settings.get_openai_api_key()
        self.model = model or settings.openai_model
        self.temperature = (
            temperature if temperature is not None else settings.openai_temperature
        )
        self.max_tokens = max_tokens or settings.openai_max_tokens

        self._llm: ChatOpenAI | None = None
        self._prompt = ChatPromptTemplate.from_messages(
            [
                ("system", SYSTEM_PROMPT),
                MessagesPlaceholder("history"),
                ("human", "{question}"),
            ]
        )

    @property
    def llm(self) -> ChatOpenAI:
        """Get or create the LangChain ChatOpenAI instance.

        Raises:
            AnalysisError: If API key is not configured.
        """
        if self._llm is None:
            if not self.api_key:
                raise AnalysisError(
                    "OpenAI API key not configured",
                    model=self.model,
                    details={"missing": "openai_api_key"},
                )

            self._llm = ChatOpenAI(
                api_key=self.api_key,  # type: ignore[arg-type]
                model=self.model,
                temperature=self.temperature,
                max_completion_tokens=self.max_tokens,
            )

        return self._llm

    def build_messages(self, request: AnalysisRequest) -> list[BaseMessage]:
        """Render the prompt for a request.

        History entries use the ``human`` / ``ai`` tags LangChain understands
        as message types, so they are passed through unchanged.
        """
        return self._prompt.format_messages(
            source_name=request.workbook.source_name,
            workbook=request.serialized_workbook(),
            history=[(entry.role, entry.text) for entry in request.history],
            question=request.question,
        )

    async def analyze(self, request: AnalysisRequest) -> str | None:
        """Ask the model a question about the request's workbook.

        Returns:
            The answer text, or None if the model returned nothing.

        Raises:
            AnalysisError: If the model call fails.
        """
        messages = self.build_messages(request)
        llm = self.llm

        start = time.monotonic()
        try:
            response = await llm.ainvoke(messages)
        except Exception as e:
            api_logger.log_api_call(
                service="openai",
                operation="analyze",
                duration_seconds=time.monotonic() - start,
                success=False,
                error_message=str(e),
            )
            raise AnalysisError(
                f"Analysis failed: {e}",
                model=self.model,
                details={"original_error": str(e)},
            ) from e

        usage_metadata = getattr(response, "usage_metadata", None) or {}
        api_logger.log_api_call(
            service="openai",
            operation="analyze",
            duration_seconds=time.monotonic() - start,
            tokens_used=usage_metadata.get("total_tokens"),
        )

        content = response.content
        if not isinstance(content, str):
            content = str(content) if content else ""
        content = content.strip()
        if not content:
            logger.warning(f"Model {self.model} returned an empty answer")
            return None
        return content
