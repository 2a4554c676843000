"""
PPC Intelligence Agent

Routes natural-language paid-search requests to an LLM that drives a fixed
set of tools: Google Ads (through a stdio MCP server), DataForSEO market
research, and Slack notifications.
"""

__version__ = '0.3.0'
__author__ = 'PPC Agent Contributors'
__license__ = 'MIT'

from .agent_loop import AgentLoop, AgentResponse, ToolCallRecord, TokenUsage
from .context import AgentContext
from .mcp_bridge import BridgeState, McpBridge
from .tool_registry import ToolName, ToolRegistry, ToolSpec


# Lazy import for the orchestrator to keep `import ppc_agent` cheap
def get_agent(context=None):
    """Build the top-level PPC agent bound to a context."""
    from .orchestrator import PPCAgent

    return PPCAgent(context or AgentContext())


__all__ = [
    'AgentContext',
    'AgentLoop',
    'AgentResponse',
    'BridgeState',
    'McpBridge',
    'TokenUsage',
    'ToolCallRecord',
    'ToolName',
    'ToolRegistry',
    'ToolSpec',
    'get_agent',
]
