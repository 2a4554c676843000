"""
Shared fixtures: a fully configured AgentContext that never touches the
network, wired to a scripted model and an in-memory bridge.
"""

import os
import sys

# Project root on the path so run_agent and ppc_agent import without installing
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import pytest
import pytest_asyncio

from fakes import SLACK_URL, FakeBridge, FakeLLM
from ppc_agent.config import (
    DataForSEOConfig,
    GoogleAdsCredentials,
    NotificationConfig,
    PPCAgentConfig,
)
from ppc_agent.context import AgentContext


@pytest.fixture
def config() -> PPCAgentConfig:
    return PPCAgentConfig(
        google_ads=GoogleAdsCredentials(
            developer_token='dev',
            client_id='cid',
            client_secret='secret',
            refresh_token='refresh',
            default_customer_id='1234567890',
        ),
        dataforseo=DataForSEOConfig(login='login', password='password'),
        notifications=NotificationConfig(slack_webhook_url=SLACK_URL),
    )


@pytest.fixture
def fake_bridge() -> FakeBridge:
    return FakeBridge()


@pytest.fixture
def llm() -> FakeLLM:
    return FakeLLM()


@pytest_asyncio.fixture
async def context(config, fake_bridge, llm):
    ctx = AgentContext(config, llm_client=llm, bridge_factory=lambda: fake_bridge)
    yield ctx
    await ctx.close()
