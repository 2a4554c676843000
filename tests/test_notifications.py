"""
Tests for the Slack notifier and the send_slack_alert tool.
"""

import json

import httpx
import pytest
import pytest_asyncio

from ppc_agent.http_client import HttpClientManager
from ppc_agent.tools.notifications import SlackNotifier, send_slack_alert

from fakes import SLACK_URL, mock_transport


class SlackRecorder:

    def __init__(self, status_code: int = 200):
        self.status_code = status_code
        self.payloads = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        assert str(request.url) == SLACK_URL
        self.payloads.append(json.loads(request.content))
        return httpx.Response(self.status_code, text='ok')


@pytest_asyncio.fixture
async def slack(context):
    recorder = SlackRecorder()
    mock_transport(context, 'slack_http', recorder)
    return recorder


# ============================================================================
# Delivery
# ============================================================================


class TestSendMessage:

    @pytest.mark.asyncio
    async def test_posts_text(self, context, slack):
        assert await context.notifier.send_message('hello') is True
        assert slack.payloads == [{'text': 'hello'}]

    @pytest.mark.asyncio
    async def test_unconfigured_returns_false(self):
        http = HttpClientManager('slack', transport=httpx.MockTransport(SlackRecorder()))
        notifier = SlackNotifier('', http)
        assert notifier.configured is False
        assert await notifier.send_message('hello') is False
        assert http.started is False

    @pytest.mark.asyncio
    async def test_http_error_returns_false(self, context):
        mock_transport(context, 'slack_http', SlackRecorder(status_code=404))
        assert await context.notifier.send_message('hello') is False

    @pytest.mark.asyncio
    async def test_transport_error_returns_false(self, context):
        def handler(request):
            raise httpx.ConnectError('down', request=request)

        mock_transport(context, 'slack_http', handler)
        assert await context.notifier.send_message('hello') is False


# ============================================================================
# Templates
# ============================================================================


class TestTemplates:

    @pytest.mark.asyncio
    async def test_health_check_alert(self, context, slack):
        issues = [
            {'severity': 'critical', 'title': 'No conversions', 'impact': '$400 wasted'},
            {'severity': 'high', 'title': 'Low CTR', 'impact': 'Fewer clicks'},
            {'severity': 'low', 'title': 'Minor', 'impact': '-'},
        ]
        await context.notifier.send_health_check_alert(issues, 1234.5, 400, 0.0321)

        payload = slack.payloads[0]
        assert 'Total Spend: $1,234.50' in payload['text']
        assert 'CTR: 3.21%' in payload['text']
        assert 'Critical Issues: 1' in payload['text']
        assert 'High Issues: 1' in payload['text']
        assert payload['blocks'][0]['type'] == 'header'
        assert payload['blocks'][-1]['text']['text'] == '*Critical Issues:*\n• No conversions: $400 wasted'

    @pytest.mark.asyncio
    async def test_campaign_created_alert(self, context, slack):
        await context.notifier.send_campaign_created_alert('Search - Patios', 50, 3, 24, created=False)
        payload = slack.payloads[0]
        assert payload['text'].startswith('*Campaign VALIDATED*')
        fields = {f['title']: f['value'] for f in payload['attachments'][0]['fields']}
        assert fields['Daily Budget'] == '$50'
        assert fields['Status'] == 'Ready to Create'

    @pytest.mark.asyncio
    @pytest.mark.parametrize('total,urgency', [
        (150, 'URGENT'),
        (75, 'WARNING'),
        (25, 'INFO'),
    ])
    async def test_wasted_spend_urgency(self, context, slack, total, urgency):
        sent = await context.notifier.send_wasted_spend_alert(
            total, [{'keyword': 'free patio', 'spend': 20, 'clicks': 8}]
        )
        assert sent is True
        text = slack.payloads[0]['text']
        assert text.startswith(f'{urgency} *Wasted Spend Detected*')
        assert '• "free patio": $20.00 (8 clicks, 0 conv)' in text

    @pytest.mark.asyncio
    async def test_small_waste_not_sent(self, context, slack):
        assert await context.notifier.send_wasted_spend_alert(9.99, []) is False
        assert slack.payloads == []

    @pytest.mark.asyncio
    async def test_competitor_alert(self, context, slack):
        await context.notifier.send_competitor_alert([
            {'domain': 'rival.com', 'keywords': 40, 'estimated_spend': 2500},
        ])
        assert slack.payloads[0]['text'] == (
            '*Competitor Intelligence Update*\n\n• *rival.com*: 40 keywords, ~$2,500/mo'
        )


# ============================================================================
# Tool
# ============================================================================


class TestSlackAlertTool:

    @pytest.mark.asyncio
    async def test_urgency_emoji(self, context, slack):
        result = await send_slack_alert(context, {'message': 'Budget capped', 'urgency': 'critical'})
        assert result == {'sent': True, 'urgency': 'critical'}
        assert slack.payloads[0] == {'text': ':rotating_light: Budget capped'}

    @pytest.mark.asyncio
    async def test_message_required(self, context):
        with pytest.raises(ValueError, match='message is required'):
            await send_slack_alert(context, {})
