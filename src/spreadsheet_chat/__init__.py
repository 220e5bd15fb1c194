"""Spreadsheet Chat - converse with an AI analyst about spreadsheet data."""

__version__ = "0.1.0"

from spreadsheet_chat.api import app, create_app  # noqa: E402

__all__ = ["app", "create_app"]


def main() -> None:
    """Run the FastAPI server using uvicorn."""
    import uvicorn

    from spreadsheet_chat.config import settings

    uvicorn.run(
        "spreadsheet_chat.api:app",
        host=settings.server_host,
        port=settings.server_port,
        reload=settings.debug,
    )
