"""
Core module - configuration, database and response formatting.
"""
from .config import get_settings
from .db import get_session, Base, engine, AsyncSessionLocal, dialect_insert
from .responses import (
    ErrorCodes,
    success_response,
    error_response,
)

__all__ = [
    # Config
    "get_settings",
    # Database
    "get_session",
    "Base",
    "engine",
    "AsyncSessionLocal",
    "dialect_insert",
    # Responses
    "ErrorCodes",
    "success_response",
    "error_response",
]
