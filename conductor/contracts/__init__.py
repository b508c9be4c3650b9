"""Typed shapes shared across the orchestrator, the model client and the wire."""
