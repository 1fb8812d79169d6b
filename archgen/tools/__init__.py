"""
Agent tools for ArchGen.

The agent has a single tool, batch_update, which submits an ordered batch of
graph operations. This package defines its schema, decoder and registry.
"""

from archgen.tools.schema import BATCH_UPDATE_TOOL, DecodeError, decode_batch_update
from archgen.tools.registry import ToolRegistry, ToolDefinition, ToolExecution, create_default_registry

__all__ = [
    "BATCH_UPDATE_TOOL",
    "DecodeError",
    "decode_batch_update",
    "ToolRegistry",
    "ToolDefinition",
    "ToolExecution",
    "create_default_registry",
]
