"""Core app configuration and database."""

from codepassport.core.config import Settings, get_settings
from codepassport.core.database import build_engine, build_session_factory, get_db

__all__ = ["Settings", "get_settings", "build_engine", "build_session_factory", "get_db"]
