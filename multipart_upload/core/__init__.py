"""Core module exports"""
from .config import settings, Settings
from .database import Base, engine, SessionLocal, get_db, build_engine, build_session_factory

__all__ = [
    "settings",
    "Settings",
    "Base",
    "engine",
    "SessionLocal",
    "get_db",
    "build_engine",
    "build_session_factory",
]
