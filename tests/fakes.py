"""
Test doubles: a scripted Anthropic client and an in-memory MCP bridge.
"""

import json
from types import SimpleNamespace
from typing import Any, Dict, List, Optional
from unittest.mock import AsyncMock

import httpx

from ppc_agent.mcp_bridge import BridgeState

SLACK_URL = 'https://hooks.slack.test/services/T000/B000/XXX'


# ============================================================================
# Scripted model
# ============================================================================


def text_block(text: str):
    return SimpleNamespace(type='text', text=text)


def tool_use_block(tool_id: str, name: str, tool_input: Optional[Dict[str, Any]] = None):
    return SimpleNamespace(type='tool_use', id=tool_id, name=name, input=tool_input or {})


def message(content: List[Any], stop_reason: str = 'end_turn', input_tokens: int = 10, output_tokens: int = 5):
    return SimpleNamespace(
        content=content,
        stop_reason=stop_reason,
        usage=SimpleNamespace(input_tokens=input_tokens, output_tokens=output_tokens),
    )


class FakeMessages:
    def __init__(self, responses: List[Any]):
        self.responses = list(responses)
        self.calls: List[Dict[str, Any]] = []

    async def create(self, **kwargs):
        self.calls.append(kwargs)
        if not self.responses:
            raise AssertionError('model called more times than scripted')
        return self.responses.pop(0)


class FakeLLM:
    """Stands in for AsyncAnthropic; replays scripted responses in order."""

    def __init__(self, responses: Optional[List[Any]] = None):
        self.messages = FakeMessages(responses or [])

    def script(self, *responses: Any) -> None:
        self.messages.responses.extend(responses)


# ============================================================================
# In-memory bridge
# ============================================================================


class FakeBridge:
    def __init__(self):
        self.state = BridgeState.UNINITIALIZED
        self.default_customer_id = None
        self.list_accounts = AsyncMock(return_value=[])
        self.query = AsyncMock(return_value=[])
        self.mutate = AsyncMock(return_value={'success': True})
        self.started = 0
        self.stopped = 0

    async def start(self):
        self.started += 1
        self.state = BridgeState.READY

    async def stop(self):
        self.stopped += 1
        self.state = BridgeState.TERMINATED

    def get_health(self):
        return {'state': self.state.value}


def mock_transport(ctx, attr: str, handler) -> None:
    """Route one of the context's HTTP clients through an httpx.MockTransport."""
    manager = getattr(ctx, attr)
    manager._transport = httpx.MockTransport(handler)
    manager._backoff_sleep = AsyncMock()


# ============================================================================
# Campaign designs
# ============================================================================

CAMPAIGN_DESIGN = {
    'name': 'Search - Landscape Design - Dublin',
    'dailyBudget': 50,
    'biddingStrategy': 'MAXIMIZE_CLICKS',
    'networks': 'SEARCH_ONLY',
    'locations': ['Dublin', 'Powell, Ohio', 'Springfield'],
    'adGroups': [{
        'name': 'Landscape Design',
        'keywords': [
            {'text': 'landscape design dublin ohio', 'matchType': 'EXACT'},
            {'text': 'landscape designer', 'matchType': 'phrase'},
        ],
        'ads': [{
            'headlines': [
                'Landscape Design Dublin',
                'Free Design Consultation',
                'Licensed And Insured',
            ],
            'descriptions': [
                'Custom outdoor spaces designed for Central Ohio homes.',
                'Book your free estimate today.',
            ],
            'path1': 'design',
            'path2': 'dublin',
        }],
    }],
}


def design_reply(data: Optional[Dict[str, Any]] = None):
    """A model reply carrying a campaign design in a fenced JSON block."""
    return message([text_block('```json\n' + json.dumps(data or CAMPAIGN_DESIGN) + '\n```')])
