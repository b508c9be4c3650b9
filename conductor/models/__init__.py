"""Pydantic wire models for the Conductor API."""
