"""Event registration backend: team sign-up, payment orders and payment verification."""

# Re-export the common database helpers for convenience.
from .database import Base, SessionLocal, engine, get_db  # noqa: F401

__all__ = ["Base", "SessionLocal", "engine", "get_db"]
