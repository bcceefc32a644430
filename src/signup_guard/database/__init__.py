from signup_guard.database.base import Base, DateTimeMixin, utcnow
from signup_guard.database.engine import build_engine, build_session_factory

__all__ = ["Base", "DateTimeMixin", "build_engine", "build_session_factory", "utcnow"]
