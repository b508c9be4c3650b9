"""
Tool layer: descriptors, metadata, registry and the data-tool handlers.

    definitions  static OpenAI-format descriptors (what the model sees)
    metadata     ToolKind / ToolMeta (how the orchestrator treats a tool)
    registry     ToolEntry / ToolRegistry (immutable name -> entry map)
    handlers     data-tool handlers (channel data, feedback)
    catalog      build_tool_registry(): wires everything together
"""

from conductor.core.tools.metadata import TERMINAL_KINDS, ToolKind, ToolMeta
from conductor.core.tools.registry import ToolEntry, ToolExecutionError, ToolRegistry

__all__ = [
    "TERMINAL_KINDS",
    "ToolEntry",
    "ToolExecutionError",
    "ToolKind",
    "ToolMeta",
    "ToolRegistry",
]
