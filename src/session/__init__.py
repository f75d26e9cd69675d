"""Session layer: authenticated identity and privilege flag."""

from src.session.store import SessionStore

__all__ = ["SessionStore"]
