"""
FastAPI routers for ClearFrame.
"""

from clearframe.routers import engine, health, sessions

__all__ = ["health", "engine", "sessions"]
