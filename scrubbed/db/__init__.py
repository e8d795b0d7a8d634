"""SQLAlchemy engine, session factory and declarative base for the SQL store."""

from .session import Base, get_engine, get_session

__all__ = ["Base", "get_engine", "get_session"]
