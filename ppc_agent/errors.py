"""
Exception hierarchy for the PPC agent.

Transport and remote failures keep their original message so they can be
surfaced to the model verbatim as tool results.
"""

from typing import Any, List, Optional


class PPCAgentError(Exception):
    """Base class for every error raised by this package."""

    default_message = 'PPC agent error'

    def __init__(self, message: Optional[str] = None):
        super().__init__(message or self.default_message)


# -------------------------------------------------------------------
# Bridge
# -------------------------------------------------------------------


class BridgeError(PPCAgentError):
    default_message = 'MCP bridge error'


class StartupError(BridgeError):
    default_message = 'Failed to start MCP server'


class NotStartedError(BridgeError):
    default_message = 'MCP server not started'


class RpcTimeoutError(BridgeError):
    default_message = 'MCP request timed out'

    def __init__(self, method: str, timeout: float):
        super().__init__(f'MCP request timed out after {timeout:g}s: {method}')
        self.method = method
        self.timeout = timeout


class BridgeClosedError(BridgeError):
    default_message = 'MCP server exited before responding'


class RemoteError(BridgeError):
    """A JSON-RPC error object (or an MCP error result) returned by the server."""

    default_message = 'MCP server returned an error'

    def __init__(
        self,
        message: Optional[str] = None,
        code: Optional[int] = None,
        data: Any = None,
    ):
        super().__init__(message)
        self.code = code
        self.data = data


# -------------------------------------------------------------------
# Tools
# -------------------------------------------------------------------


class ToolError(PPCAgentError):
    default_message = 'Tool failed'


class ToolRegistrationError(ToolError):
    default_message = 'Invalid tool registration'


class UnknownToolError(ToolError):
    def __init__(self, name: str):
        super().__init__(f'Unknown tool: {name}')
        self.name = name


class GaqlValidationError(ToolError):
    default_message = 'Invalid GAQL query'


class DataForSEOError(ToolError):
    default_message = 'DataForSEO request failed'


class NotificationError(ToolError):
    default_message = 'Slack notification failed'


# -------------------------------------------------------------------
# Agent loop
# -------------------------------------------------------------------


class AgentLoopExhaustedError(PPCAgentError):
    """The model kept requesting tools past the iteration cap."""

    def __init__(
        self,
        max_iterations: int,
        tool_calls: Optional[List[Any]] = None,
        usage: Any = None,
    ):
        super().__init__(
            f'Agent exceeded max iterations ({max_iterations})'
        )
        self.max_iterations = max_iterations
        self.tool_calls = tool_calls or []
        self.usage = usage


# -------------------------------------------------------------------
# Campaign builder / webhook
# -------------------------------------------------------------------


class CampaignDesignError(PPCAgentError):
    default_message = 'Could not design campaign'


class CampaignValidationError(PPCAgentError):
    default_message = 'Campaign spec failed validation'

    def __init__(self, errors: List[str]):
        super().__init__(
            'Campaign spec failed validation: ' + '; '.join(errors)
        )
        self.errors = list(errors)


class WebhookRequestError(PPCAgentError):
    default_message = 'Invalid webhook request'


class CircuitBreakerOpenError(PPCAgentError):
    """Raised when a request is blocked by an open circuit breaker."""

    default_message = 'Circuit breaker is open'
