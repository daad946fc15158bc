"""App — session-level wiring of the core services."""

from src.app.session import CoreSession

__all__ = ["CoreSession"]
