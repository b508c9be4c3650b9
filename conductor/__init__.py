"""Conductor: tool-calling conversation orchestrator."""
