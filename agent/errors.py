"""Exception types raised (or captured) by the execution core.

Tool-level errors never escape the tool-execution boundary: they are turned
into error tool results so the model can react. Only a transport failure
during a run's own model call aborts that run.
"""


class AgentError(Exception):
    """Base class for all execution-core errors."""


class ToolExecutionError(AgentError):
    """A tool handler raised or could not be executed."""

    def __init__(self, tool_name: str, reason: str):
        self.tool_name = tool_name
        self.reason = reason
        super().__init__(f"Tool execution failed: {reason}")


class UnknownToolError(AgentError):
    """The model asked for a tool that is not registered."""

    def __init__(self, tool_name: str):
        self.tool_name = tool_name
        super().__init__(f"Unknown tool: {tool_name}")


class TransportError(AgentError):
    """Calling the model client failed."""


class MaxIterationsExceeded(AgentError):
    """The iteration budget ran out before the run completed."""

    def __init__(self, max_iterations: int):
        self.max_iterations = max_iterations
        super().__init__(f"Maximum iterations ({max_iterations}) reached without completion")


class FutureRejection(AgentError):
    """Wraps a non-exception rejection reason passed to ``Future.reject``."""

    def __init__(self, reason):
        self.reason = reason
        super().__init__(str(reason))


class FutureTimeoutError(AgentError, TimeoutError):
    """``Future.wait`` gave up before the future settled."""


class FutureNotSettledError(AgentError):
    """``Future.get_result`` was called on a pending future."""
