"""API module exports"""
from .routes import router, register_error_handlers

__all__ = ["router", "register_error_handlers"]
