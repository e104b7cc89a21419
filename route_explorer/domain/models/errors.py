class AgentError(Exception):
    """Base class for execution core errors."""


class AgentSetupError(AgentError):
    """Missing credentials or malformed configuration. Fatal before the run starts."""


class IterationLimitError(AgentError):
    """The reasoning loop reached its iteration ceiling. Fatal to the run."""

    def __init__(self, limit: int):
        super().__init__(f"Iteration limit of {limit} reached")
        self.limit = limit


class RemoteConnectionError(AgentError):
    """A remote tool server could not be reached."""


class ToolTimeoutError(AgentError):
    """A tool call exceeded the configured tool timeout."""


class ModelTimeoutError(AgentError):
    """A model call exceeded the configured model timeout."""
