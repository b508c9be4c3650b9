"""Conductor core: model turn protocol, tools, authorization and delivery."""
