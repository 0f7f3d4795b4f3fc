"""Database package."""

from agentpod.db.models import Base
from agentpod.db.session import close_db, get_session_factory, init_db, init_engine

__all__ = ["Base", "close_db", "get_session_factory", "init_db", "init_engine"]
