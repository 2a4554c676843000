"""
Per-session resources shared by every tool handler and agent loop.

An AgentContext owns the Anthropic client, the Google Ads MCP bridge and
the HTTP client managers. The bridge is started lazily on first use; if
the MCP server has exited, the next caller gets a fresh bridge.

Usage:
    async with AgentContext() as ctx:
        bridge = await ctx.get_bridge()
        accounts = await bridge.list_accounts()
"""

import asyncio
import logging
from typing import Any, Callable, Dict, Optional

from anthropic import AsyncAnthropic

from .config import PPCAgentConfig, load_config
from .http_client import HttpClientManager
from .mcp_bridge import BridgeState, McpBridge
from .tools.notifications import SlackNotifier

logger = logging.getLogger(__name__)


class AgentContext:
    """Explicit handle replacing process-wide singletons."""

    def __init__(
        self,
        config: Optional[PPCAgentConfig] = None,
        *,
        llm_client: Any = None,
        bridge_factory: Optional[Callable[[], McpBridge]] = None,
    ):
        self.config = config or load_config()
        self._llm = llm_client
        self._bridge_factory = bridge_factory or self._create_bridge
        self._bridge: Optional[McpBridge] = None
        self._bridge_lock = asyncio.Lock()

        dataforseo = self.config.dataforseo
        self.dataforseo_http = HttpClientManager(
            'dataforseo',
            base_url=dataforseo.base_url,
            auth=(dataforseo.login, dataforseo.password) if dataforseo.configured else None,
        )
        self.slack_http = HttpClientManager('slack', timeout=10.0)
        self.notifier = SlackNotifier(
            self.config.notifications.slack_webhook_url, self.slack_http
        )

    # -------------------------------------------------------------------
    # LLM
    # -------------------------------------------------------------------

    @property
    def llm(self) -> Any:
        if self._llm is None:
            self._llm = AsyncAnthropic(
                api_key=self.config.agent.anthropic_api_key or None
            )
        return self._llm

    # -------------------------------------------------------------------
    # Google Ads bridge
    # -------------------------------------------------------------------

    def _create_bridge(self) -> McpBridge:
        missing = self.config.google_ads.missing()
        if missing:
            logger.warning('Google Ads credentials missing: %s', ', '.join(missing))
        return McpBridge(
            command=self.config.mcp.command,
            env=self.config.google_ads.as_env(),
            request_timeout=self.config.mcp.request_timeout,
            default_customer_id=self.config.google_ads.default_customer_id or None,
        )

    async def get_bridge(self) -> McpBridge:
        """Return a READY bridge, starting (or replacing) it if needed."""
        async with self._bridge_lock:
            bridge = self._bridge
            if bridge is not None and bridge.state == BridgeState.READY:
                return bridge
            if bridge is not None:
                logger.info('MCP bridge is %s; starting a new one', bridge.state.value)
                await bridge.stop()
            bridge = self._bridge_factory()
            self._bridge = bridge
            await bridge.start()
            return bridge

    @property
    def default_customer_id(self) -> str:
        return self.config.google_ads.default_customer_id

    # -------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------

    async def close(self) -> None:
        async with self._bridge_lock:
            if self._bridge is not None:
                await self._bridge.stop()
                self._bridge = None
        await self.dataforseo_http.stop()
        await self.slack_http.stop()

    async def __aenter__(self) -> 'AgentContext':
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    def get_health(self) -> Dict[str, Any]:
        return {
            'bridge': self._bridge.get_health() if self._bridge is not None else None,
            'dataforseo': self.dataforseo_http.get_health(),
            'slack': self.slack_http.get_health(),
            'dataforseo_configured': self.config.dataforseo.configured,
            'slack_configured': self.config.notifications.configured,
            'google_ads_missing': self.config.google_ads.missing(),
        }
