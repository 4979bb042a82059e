from .base import Base
from .engine import create_tables, dispose_engine, get_engine
from .session import create_session_maker, session_scope

__all__ = [
    "Base",
    "create_session_maker",
    "create_tables",
    "dispose_engine",
    "get_engine",
    "session_scope",
]
