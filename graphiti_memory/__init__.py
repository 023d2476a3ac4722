"""Long-term memory for coding-agent sessions, backed by a Graphiti knowledge graph."""

from .core.config import Settings, get_settings
from .core.exceptions import (
    ConfigurationError,
    GraphClientError,
    GraphConnectionError,
    GraphMemoryError,
    GraphToolError,
    SessionResolutionError,
)
from .plugin import MemoryPlugin
from .utils.logging_config import configure_logging

__all__ = [
    "ConfigurationError",
    "GraphClientError",
    "GraphConnectionError",
    "GraphMemoryError",
    "GraphToolError",
    "MemoryPlugin",
    "SessionResolutionError",
    "Settings",
    "configure_logging",
    "get_settings",
]
