"""
ArchGen - streaming architecture-diagram agent.

A language model describes a cloud architecture by emitting batches of graph
operations through a single ``batch_update`` tool. This package contains:

- graph: hierarchical diagram model and the atomic operation applier
- tools: tool schema, argument decoder and tool registry
- agents: conversation loop controller and turn budget
- core: settings, OpenAI streaming client, SSE transport, prompts
- server: FastAPI application exposing the SSE stream endpoint
"""

__version__ = "0.3.0"
