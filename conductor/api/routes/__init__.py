"""API route modules."""
from __future__ import annotations

from conductor.api.routes import agent, assistant, health

__all__ = ["agent", "assistant", "health"]
