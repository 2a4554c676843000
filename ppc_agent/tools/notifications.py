"""
Slack notifications.

Posting is best-effort: an unconfigured webhook or a failed request is
logged and reported as False, never raised into the agent loop.
"""

import functools
import logging
from typing import TYPE_CHECKING, Any, Dict, List, Optional

import httpx

from ..errors import CircuitBreakerOpenError
from ..http_client import HttpClientManager
from ..tool_registry import ToolName, ToolSpec

if TYPE_CHECKING:
    from ..context import AgentContext

logger = logging.getLogger(__name__)

URGENCY_EMOJI = {
    'info': ':information_source:',
    'warning': ':warning:',
    'critical': ':rotating_light:',
}


def _money(value: float) -> str:
    return f'${value:,.2f}'


class SlackNotifier:
    """Sends messages to a Slack incoming webhook."""

    def __init__(self, webhook_url: str, http: Optional[HttpClientManager] = None):
        self.webhook_url = webhook_url
        self.http = http or HttpClientManager('slack', timeout=10.0)

    @property
    def configured(self) -> bool:
        return bool(self.webhook_url)

    async def send_message(
        self,
        text: str,
        blocks: Optional[List[Dict[str, Any]]] = None,
        attachments: Optional[List[Dict[str, Any]]] = None,
    ) -> bool:
        if not self.configured:
            logger.warning('Slack webhook not configured; message not sent')
            return False

        payload: Dict[str, Any] = {'text': text}
        if blocks:
            payload['blocks'] = blocks
        if attachments:
            payload['attachments'] = attachments

        try:
            resp = await self.http.request('POST', self.webhook_url, json=payload, retries=1)
        except (httpx.HTTPError, CircuitBreakerOpenError) as e:
            logger.error('Failed to send Slack message: %s', e)
            return False
        if resp.status_code >= 400:
            logger.error('Slack webhook error: %d %s', resp.status_code, resp.text[:200])
            return False
        logger.info('Slack message sent')
        return True

    # -------------------------------------------------------------------
    # Templates
    # -------------------------------------------------------------------

    async def send_health_check_alert(
        self,
        issues: List[Dict[str, Any]],
        total_spend: float,
        wasted_spend: float,
        ctr: float,
    ) -> bool:
        critical = [i for i in issues if i.get('severity') == 'critical']
        high = [i for i in issues if i.get('severity') == 'high']

        text = (
            '*PPC Health Check Alert*\n\n'
            f'Total Spend: {_money(total_spend)}\n'
            f'Wasted Spend: {_money(wasted_spend)}\n'
            f'CTR: {ctr * 100:.2f}%\n\n'
            f'Critical Issues: {len(critical)}\n'
            f'High Issues: {len(high)}'
        )
        blocks: List[Dict[str, Any]] = [
            {'type': 'header', 'text': {'type': 'plain_text', 'text': 'PPC Health Check Alert'}},
            {
                'type': 'section',
                'fields': [
                    {'type': 'mrkdwn', 'text': f'*Total Spend:*\n{_money(total_spend)}'},
                    {'type': 'mrkdwn', 'text': f'*Wasted Spend:*\n{_money(wasted_spend)}'},
                    {'type': 'mrkdwn', 'text': f'*CTR:*\n{ctr * 100:.2f}%'},
                    {'type': 'mrkdwn', 'text': f'*Issues Found:*\n{len(issues)}'},
                ],
            },
            {'type': 'divider'},
        ]
        if critical:
            lines = '\n'.join(f"• {i.get('title')}: {i.get('impact')}" for i in critical)
            blocks.append({
                'type': 'section',
                'text': {'type': 'mrkdwn', 'text': f'*Critical Issues:*\n{lines}'},
            })
        return await self.send_message(text, blocks=blocks)

    async def send_campaign_created_alert(
        self,
        campaign_name: str,
        budget: float,
        ad_groups: int,
        keywords: int,
        created: bool,
    ) -> bool:
        status = 'CREATED' if created else 'VALIDATED'
        text = (
            f'*Campaign {status}*\n\n'
            f'{campaign_name}\n'
            f'Budget: ${budget:g}/day\n'
            f'Ad Groups: {ad_groups}\n'
            f'Keywords: {keywords}'
        )
        attachment = {
            'color': '#36a64f' if created else '#2196f3',
            'fields': [
                {'title': 'Campaign', 'value': campaign_name, 'short': False},
                {'title': 'Daily Budget', 'value': f'${budget:g}', 'short': True},
                {'title': 'Ad Groups', 'value': str(ad_groups), 'short': True},
                {'title': 'Keywords', 'value': str(keywords), 'short': True},
                {
                    'title': 'Status',
                    'value': 'PAUSED (Review Required)' if created else 'Ready to Create',
                    'short': True,
                },
            ],
        }
        return await self.send_message(text, attachments=[attachment])

    async def send_wasted_spend_alert(
        self,
        total_wasted: float,
        top_keywords: List[Dict[str, Any]],
    ) -> bool:
        """Alert on non-converting spend. Amounts under $10 are not worth a ping."""
        if total_wasted < 10:
            return False

        if total_wasted > 100:
            urgency = 'URGENT'
        elif total_wasted > 50:
            urgency = 'WARNING'
        else:
            urgency = 'INFO'

        lines = '\n'.join(
            f"• \"{k.get('keyword')}\": {_money(float(k.get('spend', 0)))} "
            f"({k.get('clicks', 0)} clicks, 0 conv)"
            for k in top_keywords[:5]
        )
        text = (
            f'{urgency} *Wasted Spend Detected*\n\n'
            f'Total: {_money(total_wasted)}\n\n'
            f'Top wasting keywords:\n{lines}'
        )
        return await self.send_message(text)

    async def send_competitor_alert(self, competitors: List[Dict[str, Any]]) -> bool:
        lines = '\n'.join(
            f"• *{c.get('domain')}*: {c.get('keywords', 0)} keywords, "
            f"~${float(c.get('estimated_spend', 0)):,.0f}/mo"
            for c in competitors[:5]
        )
        return await self.send_message(f'*Competitor Intelligence Update*\n\n{lines}')


# -------------------------------------------------------------------
# Tools
# -------------------------------------------------------------------

async def send_slack_alert(context: 'AgentContext', args: Dict[str, Any]) -> Dict[str, Any]:
    message = args.get('message')
    if not message:
        raise ValueError('message is required')
    urgency = args.get('urgency', 'info')
    emoji = URGENCY_EMOJI.get(urgency, URGENCY_EMOJI['info'])
    sent = await context.notifier.send_message(f'{emoji} {message}')
    return {'sent': sent, 'urgency': urgency}


def notification_tools(context: 'AgentContext') -> List[ToolSpec]:
    return [
        ToolSpec(
            ToolName.SEND_SLACK_ALERT,
            'Send a custom Slack notification to the marketing channel',
            {
                'type': 'object',
                'properties': {
                    'message': {'type': 'string', 'description': 'The message to send'},
                    'urgency': {
                        'type': 'string',
                        'enum': ['info', 'warning', 'critical'],
                        'default': 'info',
                    },
                },
                'required': ['message'],
            },
            functools.partial(send_slack_alert, context),
        ),
    ]
