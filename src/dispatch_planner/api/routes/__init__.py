"""Route group exports."""

from . import drafts, exports, health, journeys

__all__ = ["drafts", "journeys", "exports", "health"]
