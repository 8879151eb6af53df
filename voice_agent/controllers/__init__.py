"""FastAPI routers acting as controllers in the MVC architecture."""

from . import auth, logs, sessions, voice

__all__ = ["auth", "logs", "sessions", "voice"]
