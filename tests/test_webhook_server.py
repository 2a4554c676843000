"""Tests for the webhook server, driven through an in-process ASGI client."""

import json

import httpx
import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from ppc_agent import __version__
from ppc_agent.orchestrator import PPCAgent
from ppc_agent.webhook_server import ACTIONS, create_app

from fakes import design_reply, message, mock_transport, text_block


class SlackSink:

    def __init__(self):
        self.texts = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.texts.append(json.loads(request.content)['text'])
        return httpx.Response(200, text='ok')


@pytest_asyncio.fixture
async def slack(context):
    sink = SlackSink()
    mock_transport(context, 'slack_http', sink)
    return sink


@pytest.fixture
def created_agents():
    return []


@pytest_asyncio.fixture
async def client(context, created_agents):
    def factory():
        agent = PPCAgent(context)
        created_agents.append(agent)
        return agent

    app = create_app(agent_factory=factory)
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url='http://test') as ac:
        yield ac


# ============================================================================
# Info endpoints
# ============================================================================


@pytest.mark.asyncio
async def test_root_lists_actions(client, created_agents):
    resp = await client.get('/')
    assert resp.status_code == 200
    body = resp.json()
    assert body['version'] == __version__
    assert body['actions'] == list(ACTIONS)
    assert 'POST /webhook' in body['endpoints']
    assert created_agents == []


@pytest.mark.asyncio
async def test_health(client):
    resp = await client.get('/health')
    assert resp.status_code == 200
    assert resp.json()['status'] == 'ok'
    assert 'timestamp' in resp.json()


# ============================================================================
# Webhook
# ============================================================================


@pytest.mark.asyncio
async def test_custom_query(client, llm, created_agents):
    llm.script(message([text_block('Spend is on track.')]))

    resp = await client.post('/webhook', json={'action': 'custom', 'params': {'query': 'How is spend?'}})

    assert resp.status_code == 200
    body = resp.json()
    assert body['success'] is True
    assert body['data']['response'] == 'Spend is on track.'
    assert body['data']['usage']['total_tokens'] == 15
    assert llm.messages.calls[0]['messages'][0]['content'] == 'How is spend?'
    assert len(created_agents) == 1


@pytest.mark.asyncio
async def test_agent_reused_across_requests(client, llm, created_agents):
    llm.script(message([text_block('one')]), message([text_block('two')]))
    await client.post('/webhook', json={'action': 'custom', 'params': {'query': 'a'}})
    await client.post('/webhook', json={'action': 'custom', 'params': {'query': 'b'}})
    assert len(created_agents) == 1


@pytest.mark.asyncio
async def test_keyword_research_default_location(client, llm):
    llm.script(message([text_block('Keywords found')]))

    resp = await client.post('/webhook', json={
        'action': 'keyword-research',
        'params': {'keywords': ['patio installation']},
    })

    assert resp.json()['success'] is True
    prompt = llm.messages.calls[0]['messages'][0]['content']
    assert 'Location: Columbus,Ohio,United States' in prompt


@pytest.mark.asyncio
async def test_health_check_action(client, llm):
    llm.script(message([text_block('Healthy')]))
    resp = await client.post('/webhook', json={'action': 'health-check', 'params': {'customer_id': '42'}})
    assert resp.json()['data']['response'] == 'Healthy'
    assert 'Customer ID: 42' in llm.messages.calls[0]['messages'][0]['content']


@pytest.mark.asyncio
async def test_create_campaign_action_is_dry_run(client, context, llm, fake_bridge):
    context.notifier.webhook_url = ''
    llm.script(design_reply())

    resp = await client.post('/webhook', json={
        'action': 'create-campaign',
        'params': {'description': 'Patios in Dublin', 'business_name': 'Acme Outdoor'},
    })

    body = resp.json()
    assert body['success'] is True
    assert body['data']['created'] is False
    assert fake_bridge.mutate.call_args[1]['dry_run'] is True
    assert 'Business: Acme Outdoor' in llm.messages.calls[0]['messages'][0]['content']


# ============================================================================
# Errors
# ============================================================================


@pytest.mark.asyncio
@pytest.mark.parametrize('payload,error', [
    ({}, 'Missing required field: action'),
    ({'action': 'launch-rockets'}, 'Unknown action: launch-rockets'),
    ({'action': 'custom'}, 'Missing required param: query'),
    ({'action': 'keyword-research', 'params': {'keywords': 'patios'}}, 'Missing required param: keywords (array)'),
    ({'action': 'competitor-analysis'}, 'Missing required param: competitors (array of domains)'),
    ({'action': 'create-campaign', 'params': {}}, 'Missing required param: description'),
    ({'action': 'custom', 'params': ['x']}, 'params must be an object'),
])
async def test_bad_requests(client, slack, payload, error):
    resp = await client.post('/webhook', json=payload)

    assert resp.status_code == 400
    body = resp.json()
    assert body == {'success': False, 'error': error, 'timestamp': body['timestamp']}
    assert slack.texts == [f'*PPC Agent Webhook Error*\n\n{error}']


@pytest.mark.asyncio
async def test_invalid_json(client, slack):
    resp = await client.post(
        '/webhook', content=b'{not json', headers={'Content-Type': 'application/json'}
    )
    assert resp.status_code == 400
    assert resp.json()['error'] == 'Invalid JSON body'


@pytest.mark.asyncio
async def test_handler_failure_reported(client, llm, slack):
    # No scripted model reply: the fake client raises on the first call
    resp = await client.post('/webhook', json={'action': 'custom', 'params': {'query': 'hi'}})
    assert resp.status_code == 400
    assert resp.json()['error'] == 'model called more times than scripted'
    assert len(slack.texts) == 1
