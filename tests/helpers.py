"""Shared builders for tests that need a real (SQLite in-memory) scans table."""

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.pool import StaticPool

from codepassport.core.database import build_session_factory
from codepassport.models import Base
from codepassport.services.scan_repository import ScanRepository


def sqlite_repository(**kwargs) -> tuple[ScanRepository, Engine]:
    """ScanRepository over a fresh in-memory database shared across threads."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    return ScanRepository(build_session_factory(engine), **kwargs), engine
