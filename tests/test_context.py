"""
Tests for AgentContext: lazy bridge lifecycle and shared clients.
"""

import pytest

from ppc_agent.context import AgentContext
from ppc_agent.mcp_bridge import BridgeState, McpBridge

from fakes import FakeBridge


class TestBridgeLifecycle:

    @pytest.mark.asyncio
    async def test_bridge_started_once(self, context, fake_bridge):
        first = await context.get_bridge()
        second = await context.get_bridge()
        assert first is second is fake_bridge
        assert fake_bridge.started == 1

    @pytest.mark.asyncio
    async def test_terminated_bridge_replaced(self, config, llm):
        bridges = []

        def factory():
            bridges.append(FakeBridge())
            return bridges[-1]

        context = AgentContext(config, llm_client=llm, bridge_factory=factory)
        first = await context.get_bridge()
        first.state = BridgeState.TERMINATED

        second = await context.get_bridge()

        assert second is not first
        assert first.stopped == 1
        assert second.state == BridgeState.READY
        await context.close()
        assert second.stopped == 1

    @pytest.mark.asyncio
    async def test_default_bridge_uses_config(self, config, llm, monkeypatch):
        monkeypatch.setenv('MCP_REQUEST_TIMEOUT_SECONDS', '5')
        config.mcp.request_timeout = 12.5
        context = AgentContext(config, llm_client=llm)
        bridge = context._create_bridge()
        assert isinstance(bridge, McpBridge)
        assert bridge.default_customer_id == '1234567890'
        assert bridge.request_timeout == 12.5
        assert McpBridge().request_timeout == 60.0
        assert bridge.state == BridgeState.UNINITIALIZED
        await context.close()


class TestSharedClients:

    @pytest.mark.asyncio
    async def test_llm_client_injected(self, context, llm):
        assert context.llm is llm

    @pytest.mark.asyncio
    async def test_health_before_bridge_start(self, context):
        health = context.get_health()
        assert health['bridge'] is None
        assert health['dataforseo_configured'] is True
        assert health['slack_configured'] is True
        assert health['google_ads_missing'] == []
        assert health['dataforseo']['circuit_breaker']['state'] == 'closed'

    @pytest.mark.asyncio
    async def test_context_manager_closes(self, config, llm, fake_bridge):
        async with AgentContext(config, llm_client=llm, bridge_factory=lambda: fake_bridge) as ctx:
            await ctx.get_bridge()
        assert fake_bridge.stopped == 1
