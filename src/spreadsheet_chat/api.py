"""FastAPI application exposing spreadsheet chat sessions."""

import uuid
from contextlib import asynccontextmanager
from datetime import UTC, datetime
from typing import Annotated, Any

from fastapi import (
    FastAPI,
    File,
    HTTPException,
    Request,
    Response,
    UploadFile,
    status,
)
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from spreadsheet_chat import __version__
from spreadsheet_chat.config import settings, validate_settings_on_startup
from spreadsheet_chat.models import (
    ErrorDetail,
    HealthResponse,
    QuestionRequest,
    RemoteSheetRequest,
    SessionCreatedResponse,
    SessionResponse,
    TurnResponse,
    WorkbookDataResponse,
)
from spreadsheet_chat.services.chat_session import ChatSession
from spreadsheet_chat.services.session_manager import (
    SessionManager,
    get_session_manager,
)
from spreadsheet_chat.utils.exceptions import (
    ErrorCode,
    NoDataError,
    SpreadsheetChatError,
    ValidationError,
)
from spreadsheet_chat.utils.logging import (
    LogContext,
    clear_context,
    configure_logging,
    get_logger,
    get_request_id,
    set_request_id,
)

# Configure structured logging using settings
configure_logging(
    level=settings.log_level_int,
    use_structured_formatter=True,
)
logger = get_logger(__name__)

SUPERSEDED_MESSAGE = "The session was reset or reloaded before the request finished"


def create_app(session_manager: SessionManager | None = None) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        session_manager: Registry to serve sessions from. Defaults to the
            process-wide manager.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> Any:
        try:
            yield
        finally:
            app.state.session_manager.stop_cleanup()

    app = FastAPI(
        title="Spreadsheet Chat API",
        description=(
            "Upload a spreadsheet or import a published sheet, then ask an AI "
            "analyst questions about its data."
        ),
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )
    app.state.session_manager = session_manager or get_session_manager()

    # Configure CORS using settings
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Validate settings on startup
    validate_settings_on_startup(settings)

    def sessions() -> SessionManager:
        manager: SessionManager = app.state.session_manager
        return manager

    @app.middleware("http")
    async def request_id_middleware(request: Request, call_next: Any) -> Any:
        """Assign a request ID, expose it in logs and echo it in the response."""
        request_id = request.headers.get("X-Request-ID", str(uuid.uuid4()))
        set_request_id(request_id)
        request.state.request_id = request_id

        try:
            response = await call_next(request)
            response.headers["X-Request-ID"] = request_id
            return response
        finally:
            clear_context()

    def error_response(
        request: Request, status_code: int, content: ErrorDetail
    ) -> JSONResponse:
        request_id = getattr(request.state, "request_id", None) or get_request_id()
        content.request_id = request_id
        response = JSONResponse(
            status_code=status_code,
            content=content.model_dump(exclude_none=True),
        )
        if request_id:
            response.headers["X-Request-ID"] = request_id
        return response

    @app.exception_handler(SpreadsheetChatError)
    async def spreadsheet_chat_exception_handler(
        request: Request, exc: SpreadsheetChatError
    ) -> JSONResponse:
        """Return structured error responses for application exceptions."""
        logger.error(
            f"Spreadsheet chat error: {exc.message}",
            error_code=exc.error_code.value,
            http_status=exc.http_status,
        )
        return error_response(
            request,
            exc.http_status,
            ErrorDetail(
                detail=exc.message,
                error_code=exc.error_code.value,
                details=exc.details if exc.details else None,
            ),
        )

    @app.exception_handler(HTTPException)
    async def http_exception_handler(
        request: Request, exc: HTTPException
    ) -> JSONResponse:
        logger.warning(
            f"HTTP Error: {exc.detail}",
            status_code=exc.status_code,
        )
        return error_response(
            request, exc.status_code, ErrorDetail(detail=str(exc.detail))
        )

    @app.exception_handler(Exception)
    async def general_exception_handler(
        request: Request, exc: Exception
    ) -> JSONResponse:
        """Catch-all handler that hides internals unless debug is on."""
        logger.exception(
            f"Unexpected error: {type(exc).__name__}",
            error_type=type(exc).__name__,
        )
        if settings.debug:
            detail = f"Internal server error: {type(exc).__name__}: {exc}"
        else:
            detail = "Internal server error. Please try again later."

        return error_response(
            request,
            status.HTTP_500_INTERNAL_SERVER_ERROR,
            ErrorDetail.from_error_code(ErrorCode.INTERNAL_ERROR, detail),
        )

    # ------------------------------------------------------------------ #
    # Health
    # ------------------------------------------------------------------ #

    @app.get("/health", response_model=HealthResponse, tags=["Health"])
    async def health_check() -> dict[str, Any]:
        """Check the health status of the service."""
        logger.debug("Health check requested")
        return {
            "status": "healthy",
            "timestamp": datetime.now(UTC).isoformat(),
            "version": __version__,
        }

    # ------------------------------------------------------------------ #
    # Sessions
    # ------------------------------------------------------------------ #

    @app.post(
        "/sessions",
        response_model=SessionCreatedResponse,
        status_code=status.HTTP_201_CREATED,
        tags=["Sessions"],
    )
    async def create_session() -> SessionCreatedResponse:
        """Start a new, empty chat session."""
        session = sessions().create_session()
        return SessionCreatedResponse(session_id=session.session_id)

    @app.get(
        "/sessions/{session_id}",
        response_model=SessionResponse,
        tags=["Sessions"],
        responses={
            404: {"model": ErrorDetail, "description": "Session not found"},
            410: {"model": ErrorDetail, "description": "Session expired"},
        },
    )
    async def get_session(session_id: str) -> SessionResponse:
        """Get the session state, flags, workbook summary and all turns."""
        session = sessions().get_session(session_id)
        return SessionResponse.from_session(session)

    @app.delete(
        "/sessions/{session_id}",
        status_code=status.HTTP_204_NO_CONTENT,
        tags=["Sessions"],
        responses={404: {"model": ErrorDetail, "description": "Session not found"}},
    )
    async def delete_session(session_id: str) -> Response:
        sessions().delete_session(session_id)
        return Response(status_code=status.HTTP_204_NO_CONTENT)

    @app.post(
        "/sessions/{session_id}/reset",
        response_model=SessionResponse,
        tags=["Sessions"],
    )
    async def reset_session(session_id: str) -> SessionResponse:
        """Discard the workbook and conversation of a session."""
        session = sessions().get_session(session_id)
        session.reset()
        return SessionResponse.from_session(session)

    # ------------------------------------------------------------------ #
    # Workbooks
    # ------------------------------------------------------------------ #

    @app.post(
        "/sessions/{session_id}/workbook",
        response_model=SessionResponse,
        tags=["Workbooks"],
        responses={
            400: {"model": ErrorDetail, "description": "Unreadable or unsupported file"},
            413: {"model": ErrorDetail, "description": "File too large"},
            422: {"model": ErrorDetail, "description": "Workbook has no data"},
        },
    )
    async def upload_workbook(
        session_id: str,
        file: Annotated[UploadFile, File(description="Spreadsheet (.xlsx, .xls, .csv)")],
    ) -> SessionResponse:
        """Upload a local spreadsheet and start a conversation about it.

        A successful upload replaces any previously loaded workbook and
        restarts the conversation with a fresh greeting.
        """
        session = sessions().get_session(session_id)

        if not file.filename:
            raise ValidationError(
                message="A spreadsheet file must be provided", field="file"
            )

        content = await file.read()
        with LogContext(session_id=session_id):
            logger.info(
                "Workbook upload received",
                filename=file.filename,
                file_size=len(content),
            )
            workbook = await session.ingest_file(content, filename=file.filename)

        return _ingestion_response(session, workbook)

    @app.post(
        "/sessions/{session_id}/remote-sheet",
        response_model=SessionResponse,
        tags=["Workbooks"],
        responses={
            422: {"model": ErrorDetail, "description": "Remote sheet has no data"},
            502: {"model": ErrorDetail, "description": "Remote sheet unreachable"},
        },
    )
    async def import_remote_sheet(
        session_id: str, body: RemoteSheetRequest
    ) -> SessionResponse:
        """Import a published remote sheet by id or URL."""
        session = sessions().get_session(session_id)
        with LogContext(session_id=session_id):
            logger.info("Remote sheet import requested", sheet=body.sheet)
            workbook = await session.ingest_remote(body.sheet)

        return _ingestion_response(session, workbook)

    @app.get(
        "/sessions/{session_id}/workbook",
        response_model=WorkbookDataResponse,
        tags=["Workbooks"],
        responses={409: {"model": ErrorDetail, "description": "No workbook loaded"}},
    )
    async def get_workbook_data(session_id: str) -> WorkbookDataResponse:
        """Return every normalized sheet with its display-string rows."""
        session = sessions().get_session(session_id)
        if session.workbook is None:
            raise NoDataError(session_id=session_id)
        return WorkbookDataResponse.from_workbook(session.workbook)

    # ------------------------------------------------------------------ #
    # Conversation
    # ------------------------------------------------------------------ #

    @app.post(
        "/sessions/{session_id}/messages",
        response_model=TurnResponse,
        tags=["Conversation"],
        responses={
            400: {"model": ErrorDetail, "description": "Empty question"},
            409: {"model": ErrorDetail, "description": "No workbook loaded"},
        },
    )
    async def ask_question(session_id: str, body: QuestionRequest) -> TurnResponse:
        """Ask a question and wait for the assistant's answer turn."""
        session = sessions().get_session(session_id)
        with LogContext(session_id=session_id):
            turn = await session.ask(body.question)

        if turn is None:
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT, detail=SUPERSEDED_MESSAGE
            )
        return TurnResponse.from_turn(turn)

    logger.info("FastAPI application created successfully")
    return app


def _ingestion_response(session: ChatSession, workbook: Any) -> SessionResponse:
    if workbook is None:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT, detail=SUPERSEDED_MESSAGE
        )
    return SessionResponse.from_session(session)


# Create the application instance
app = create_app()
