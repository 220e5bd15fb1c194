from __future__ import annotations

from collections.abc import Iterator

import pytest

from spreadsheet_chat.services.chat_session import ChatSession
from spreadsheet_chat.services.session_manager import reset_session_manager
from spreadsheet_chat.workbook import SheetTable, WorkbookAggregate
from tests.fixtures import SALES_FORMATS, SALES_SHEETS, StubAnalyst, build_xlsx


@pytest.fixture
def stub_analyst() -> StubAnalyst:
    return StubAnalyst()


@pytest.fixture
def chat_session(stub_analyst: StubAnalyst) -> ChatSession:
    return ChatSession(session_id="session-1", analyst=stub_analyst)


@pytest.fixture
def sales_xlsx() -> bytes:
    """The Sales / Empty / Targets workbook as .xlsx bytes."""
    return build_xlsx(SALES_SHEETS, SALES_FORMATS)


@pytest.fixture
def sales_workbook() -> WorkbookAggregate:
    """An already-normalized two-sheet workbook."""
    return WorkbookAggregate.from_sheets(
        "sales.xlsx",
        [
            SheetTable(
                sheet_name="Sales",
                columns=("Region", "Amount"),
                rows=(
                    {"Region": "East", "Amount": "$1,000"},
                    {"Region": "West", "Amount": "$2,500"},
                ),
            ),
            SheetTable(
                sheet_name="Targets",
                columns=("Region", "Target"),
                rows=({"Region": "East", "Target": "1200"},),
            ),
        ],
    )


@pytest.fixture(autouse=True)
def cleanup_global_session_manager() -> Iterator[None]:
    """Reset the global session manager after each test."""
    yield
    reset_session_manager()
