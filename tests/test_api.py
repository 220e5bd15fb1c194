"""Tests for the FastAPI application."""

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

import httpx
import pytest
from fastapi import status

from spreadsheet_chat.api import create_app
from spreadsheet_chat.services.chat_session import ChatSession
from spreadsheet_chat.services.ingestion import WorkbookIngestor
from spreadsheet_chat.services.session_manager import (
    SessionManager,
    SessionManagerConfig,
)
from spreadsheet_chat.services.source_reader import TabularSourceReader
from tests.fixtures import StubAnalyst, build_csv, build_xlsx

XLSX_MIME = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"


@asynccontextmanager
async def create_test_client(
    session_factory: Any = None,
) -> AsyncIterator[httpx.AsyncClient]:
    """Create an async test client with proper lifespan handling.

    Args:
        session_factory: Optional factory building sessions for the manager.
    """
    manager = SessionManager(
        config=SessionManagerConfig(ttl_seconds=3600, enable_auto_cleanup=False),
        session_factory=session_factory
        or (lambda sid: ChatSession(session_id=sid, analyst=StubAnalyst())),
    )
    app = create_app(session_manager=manager)
    async with (
        app.router.lifespan_context(app),
        httpx.AsyncClient(
            transport=httpx.ASGITransport(app=app),
            base_url="http://test",
        ) as client,
    ):
        client.app = app  # type: ignore[attr-defined]
        yield client


@pytest.fixture
async def client() -> AsyncIterator[httpx.AsyncClient]:
    """Create an async test client for the FastAPI application."""
    async with create_test_client() as ac:
        yield ac


async def _new_session(client: httpx.AsyncClient) -> str:
    response = await client.post("/sessions")
    assert response.status_code == status.HTTP_201_CREATED
    session_id: str = response.json()["session_id"]
    return session_id


async def _upload(
    client: httpx.AsyncClient, session_id: str, content: bytes, filename: str
) -> httpx.Response:
    return await client.post(
        f"/sessions/{session_id}/workbook",
        files={"file": (filename, content, XLSX_MIME)},
    )


class TestHealthEndpoint:
    """Tests for the health check endpoint."""

    async def test_health_returns_healthy(self, client: httpx.AsyncClient) -> None:
        response = await client.get("/health")

        assert response.status_code == status.HTTP_200_OK
        data = response.json()
        assert data["status"] == "healthy"
        assert data["version"] == "0.1.0"
        assert "timestamp" in data

    async def test_request_id_generated(self, client: httpx.AsyncClient) -> None:
        response = await client.get("/health")

        assert response.headers["X-Request-ID"]

    async def test_request_id_echoed(self, client: httpx.AsyncClient) -> None:
        response = await client.get("/health", headers={"X-Request-ID": "req-42"})

        assert response.headers["X-Request-ID"] == "req-42"


class TestSessionEndpoints:
    """Tests for session lifecycle endpoints."""

    async def test_new_session_is_empty(self, client: httpx.AsyncClient) -> None:
        session_id = await _new_session(client)

        response = await client.get(f"/sessions/{session_id}")

        assert response.status_code == status.HTTP_200_OK
        data = response.json()
        assert data["state"] == "empty"
        assert data["workbook"] is None
        assert data["turns"] == []
        assert data["is_processing"] is False
        assert data["is_typing"] is False

    async def test_unknown_session_returns_404(self, client: httpx.AsyncClient) -> None:
        response = await client.get(
            "/sessions/missing", headers={"X-Request-ID": "req-404"}
        )

        assert response.status_code == status.HTTP_404_NOT_FOUND
        data = response.json()
        assert data["error_code"] == "E3003"
        assert data["request_id"] == "req-404"
        assert data["details"]["session_id"] == "missing"

    async def test_delete_session(self, client: httpx.AsyncClient) -> None:
        session_id = await _new_session(client)

        response = await client.delete(f"/sessions/{session_id}")
        assert response.status_code == status.HTTP_204_NO_CONTENT

        response = await client.get(f"/sessions/{session_id}")
        assert response.status_code == status.HTTP_404_NOT_FOUND


class TestWorkbookUpload:
    """Tests for uploading spreadsheets."""

    async def test_upload_greets(
        self, client: httpx.AsyncClient, sales_xlsx: bytes
    ) -> None:
        session_id = await _new_session(client)

        response = await _upload(client, session_id, sales_xlsx, "sales.xlsx")

        assert response.status_code == status.HTTP_200_OK
        data = response.json()
        assert data["state"] == "greeted"
        assert data["workbook"]["source_name"] == "sales.xlsx"
        assert [s["name"] for s in data["workbook"]["sheets"]] == ["Sales", "Targets"]
        (greeting,) = data["turns"]
        assert greeting["role"] == "assistant"
        assert greeting["is_greeting"] is True
        assert "**2 sheets**" in greeting["content"]

    async def test_workbook_data_uses_display_strings(
        self, client: httpx.AsyncClient, sales_xlsx: bytes
    ) -> None:
        session_id = await _new_session(client)
        await _upload(client, session_id, sales_xlsx, "sales.xlsx")

        response = await client.get(f"/sessions/{session_id}/workbook")

        assert response.status_code == status.HTTP_200_OK
        sales = response.json()["sheets"][0]
        assert sales["columns"] == ["Region", "Amount"]
        assert sales["rows"][0] == {"Region": "East", "Amount": "$1,000"}
        assert sales["row_count"] == 2

    async def test_workbook_data_without_upload_is_409(
        self, client: httpx.AsyncClient
    ) -> None:
        session_id = await _new_session(client)

        response = await client.get(f"/sessions/{session_id}/workbook")

        assert response.status_code == status.HTTP_409_CONFLICT
        assert response.json()["error_code"] == "E3001"

    async def test_csv_upload(self, client: httpx.AsyncClient) -> None:
        session_id = await _new_session(client)
        content = build_csv([["Name", "Score"], ["Ana", 9], ["Ben", 7]])

        response = await client.post(
            f"/sessions/{session_id}/workbook",
            files={"file": ("scores.csv", content, "text/csv")},
        )

        assert response.status_code == status.HTTP_200_OK
        assert response.json()["workbook"]["total_rows"] == 2

    async def test_unsupported_extension_is_400(
        self, client: httpx.AsyncClient
    ) -> None:
        session_id = await _new_session(client)

        response = await client.post(
            f"/sessions/{session_id}/workbook",
            files={"file": ("notes.txt", b"hello", "text/plain")},
        )

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert response.json()["error_code"] == "E1003"

    async def test_empty_workbook_is_422_and_keeps_state(
        self, client: httpx.AsyncClient, sales_xlsx: bytes
    ) -> None:
        session_id = await _new_session(client)
        await _upload(client, session_id, sales_xlsx, "sales.xlsx")

        response = await _upload(
            client, session_id, build_xlsx({"Blank": []}), "blank.xlsx"
        )

        assert response.status_code == 422
        assert response.json()["error_code"] == "E2003"
        session = (await client.get(f"/sessions/{session_id}")).json()
        assert session["workbook"]["source_name"] == "sales.xlsx"


class TestRemoteSheet:
    """Tests for importing remote sheets."""

    async def test_remote_import(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            assert "/d/abc123/" in str(request.url)
            return httpx.Response(200, content=b"Name,Score\nAna,9\n")

        def factory(sid: str) -> ChatSession:
            http_client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
            reader = TabularSourceReader(http_client=http_client)
            return ChatSession(
                session_id=sid,
                ingestor=WorkbookIngestor(reader=reader),
                analyst=StubAnalyst(),
            )

        async with create_test_client(session_factory=factory) as client:
            session_id = await _new_session(client)
            response = await client.post(
                f"/sessions/{session_id}/remote-sheet",
                json={
                    "sheet": "https://docs.google.com/spreadsheets/d/abc123/edit#gid=0"
                },
            )

        assert response.status_code == status.HTTP_200_OK
        assert response.json()["workbook"]["source_name"] == "Sheet_abc123"

    async def test_remote_failure_is_502(self) -> None:
        def factory(sid: str) -> ChatSession:
            http_client = httpx.AsyncClient(
                transport=httpx.MockTransport(lambda request: httpx.Response(404))
            )
            reader = TabularSourceReader(http_client=http_client)
            return ChatSession(session_id=sid, ingestor=WorkbookIngestor(reader=reader))

        async with create_test_client(session_factory=factory) as client:
            session_id = await _new_session(client)
            response = await client.post(
                f"/sessions/{session_id}/remote-sheet", json={"sheet": "abc123"}
            )

        assert response.status_code == status.HTTP_502_BAD_GATEWAY
        data = response.json()
        assert data["error_code"] == "E1004"
        assert data["details"]["status_code"] == 404

    async def test_missing_sheet_rejected(self, client: httpx.AsyncClient) -> None:
        session_id = await _new_session(client)

        response = await client.post(
            f"/sessions/{session_id}/remote-sheet", json={"sheet": ""}
        )

        assert response.status_code == 422


class TestMessages:
    """Tests for asking questions."""

    async def test_question_returns_answer(
        self, client: httpx.AsyncClient, sales_xlsx: bytes
    ) -> None:
        session_id = await _new_session(client)
        await _upload(client, session_id, sales_xlsx, "sales.xlsx")

        response = await client.post(
            f"/sessions/{session_id}/messages",
            json={"question": "What is total sales?"},
        )

        assert response.status_code == status.HTTP_200_OK
        data = response.json()
        assert data["role"] == "assistant"
        assert data["content"] == "Total sales are $3,500."

        session = (await client.get(f"/sessions/{session_id}")).json()
        assert session["state"] == "active"
        assert [t["role"] for t in session["turns"]] == [
            "assistant",
            "user",
            "assistant",
        ]
        ids = [t["id"] for t in session["turns"]]
        assert ids == sorted(ids)

    async def test_question_without_workbook_is_409(
        self, client: httpx.AsyncClient
    ) -> None:
        session_id = await _new_session(client)

        response = await client.post(
            f"/sessions/{session_id}/messages", json={"question": "Anything?"}
        )

        assert response.status_code == status.HTTP_409_CONFLICT
        assert response.json()["error_code"] == "E3001"

    async def test_blank_question_is_400(
        self, client: httpx.AsyncClient, sales_xlsx: bytes
    ) -> None:
        session_id = await _new_session(client)
        await _upload(client, session_id, sales_xlsx, "sales.xlsx")

        response = await client.post(
            f"/sessions/{session_id}/messages", json={"question": "   "}
        )

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert response.json()["error_code"] == "E3005"

    async def test_reset_returns_to_empty(
        self, client: httpx.AsyncClient, sales_xlsx: bytes
    ) -> None:
        session_id = await _new_session(client)
        await _upload(client, session_id, sales_xlsx, "sales.xlsx")

        response = await client.post(f"/sessions/{session_id}/reset")

        assert response.status_code == status.HTTP_200_OK
        data = response.json()
        assert data["state"] == "empty"
        assert data["turns"] == []
        assert data["workbook"] is None
