"""Custom exception hierarchy for the Graphiti session memory plugin."""


class GraphMemoryError(Exception):
    """Base exception for all plugin errors."""

    pass


class ConfigurationError(GraphMemoryError):
    """Plugin configuration is invalid or missing required values."""

    pass


# --- Graph service errors ---


class GraphClientError(GraphMemoryError):
    """Base for errors talking to the graph memory service."""

    pass


class GraphConnectionError(GraphClientError):
    """Failed to connect to the graph memory MCP server."""

    pass


class GraphToolError(GraphClientError):
    """A graph memory tool call failed or returned an error result."""

    def __init__(self, tool: str, message: str = "Tool call failed"):
        self.tool = tool
        super().__init__(f"{message}: {tool}")


# --- Host errors ---


class SessionResolutionError(GraphMemoryError):
    """Session parent could not be determined; retry on a later event."""

    def __init__(self, session_id=None, message: str = "Unable to resolve session"):
        self.session_id = session_id
        super().__init__(f"{message}: {session_id}" if session_id else message)
