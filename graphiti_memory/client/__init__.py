"""Adapters for the graph memory service and the host."""

from .graphiti import GraphitiClient, GraphMemoryClient
from .host import ContextLimitResolver, HostClient

__all__ = ["ContextLimitResolver", "GraphMemoryClient", "GraphitiClient", "HostClient"]
