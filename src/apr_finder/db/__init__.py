"""Database layer — engine, session, ORM base, persistence gateway."""

from apr_finder.db.base import Base
from apr_finder.db.engine import get_engine, get_session, init_engine, session_scope
from apr_finder.db.gateway import PersistenceGateway, SqlGateway

__all__ = [
    "Base",
    "PersistenceGateway",
    "SqlGateway",
    "get_engine",
    "get_session",
    "init_engine",
    "session_scope",
]
