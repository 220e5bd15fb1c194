"""Services for spreadsheet chat: ingestion, context assembly, analysis, sessions."""
