from .base import Base, TimestampMixin, utcnow, generate_uuid
from .engine import build_engine, get_engine, check_connection, close_engines
from .session import SessionLocal, get_db
from .init_db import create_tables, drop_tables

__all__ = [
    "Base",
    "TimestampMixin",
    "utcnow",
    "generate_uuid",
    "build_engine",
    "get_engine",
    "check_connection",
    "close_engines",
    "SessionLocal",
    "get_db",
    "create_tables",
    "drop_tables",
]
