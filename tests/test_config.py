"""
Tests for environment-driven configuration.
"""

from ppc_agent.config import (
    DEFAULT_MCP_COMMAND,
    DEFAULT_MODEL,
    BusinessProfile,
    GoogleAdsCredentials,
    load_config,
)

ENV_KEYS = [
    'ANTHROPIC_API_KEY', 'AGENT_MODEL', 'AGENT_MAX_TOKENS', 'AGENT_MAX_ITERATIONS',
    'GOOGLE_ADS_DEVELOPER_TOKEN', 'GOOGLE_ADS_CLIENT_ID', 'GOOGLE_ADS_CLIENT_SECRET',
    'GOOGLE_ADS_REFRESH_TOKEN', 'GOOGLE_ADS_LOGIN_CUSTOMER_ID', 'GOOGLE_ADS_DEFAULT_CUSTOMER_ID',
    'MCP_SERVER_COMMAND', 'MCP_REQUEST_TIMEOUT_SECONDS',
    'DATAFORSEO_LOGIN', 'DATAFORSEO_PASSWORD', 'SLACK_WEBHOOK_URL',
    'PPC_BUSINESS_NAME', 'PPC_BUSINESS_SERVICES', 'PPC_BUSINESS_SERVICE_AREAS', 'PORT',
]


def clear_env(monkeypatch):
    for key in ENV_KEYS:
        monkeypatch.delenv(key, raising=False)


def test_defaults(monkeypatch):
    clear_env(monkeypatch)
    config = load_config()

    assert config.agent.model == DEFAULT_MODEL
    assert config.agent.max_iterations == 10
    assert config.mcp.command == DEFAULT_MCP_COMMAND.split()
    assert config.mcp.request_timeout == 60.0
    assert config.dataforseo.configured is False
    assert config.notifications.configured is False
    assert config.server.port == 3847
    assert config.business.name == 'Stiltner Landscapes'


def test_environment_overrides(monkeypatch):
    clear_env(monkeypatch)
    monkeypatch.setenv('AGENT_MAX_ITERATIONS', '4')
    monkeypatch.setenv('MCP_SERVER_COMMAND', 'node /opt/mcp/server.js --stdio')
    monkeypatch.setenv('MCP_REQUEST_TIMEOUT_SECONDS', '15')
    monkeypatch.setenv('DATAFORSEO_LOGIN', 'me@example.com')
    monkeypatch.setenv('DATAFORSEO_PASSWORD', 'pw')
    monkeypatch.setenv('PPC_BUSINESS_NAME', 'Acme Outdoor')
    monkeypatch.setenv('PPC_BUSINESS_SERVICES', 'patios, decks ,,fencing')
    monkeypatch.setenv('PORT', '8080')

    config = load_config()

    assert config.agent.max_iterations == 4
    assert config.mcp.command == ['node', '/opt/mcp/server.js', '--stdio']
    assert config.mcp.request_timeout == 15.0
    assert config.dataforseo.configured is True
    assert config.business.name == 'Acme Outdoor'
    assert config.business.services == ['patios', 'decks', 'fencing']
    assert config.business.service_areas == BusinessProfile().service_areas
    assert config.server.port == 8080


def test_google_ads_env_forwarding():
    creds = GoogleAdsCredentials(
        developer_token='dev',
        client_id='cid',
        default_customer_id='123',
    )
    assert creds.as_env() == {
        'GOOGLE_ADS_DEVELOPER_TOKEN': 'dev',
        'GOOGLE_ADS_CLIENT_ID': 'cid',
        'GOOGLE_ADS_DEFAULT_CUSTOMER_ID': '123',
    }
    assert creds.missing() == ['client_secret', 'refresh_token']


def test_business_description():
    text = BusinessProfile(name='Acme', services=['patios'], service_areas=['Dublin']).describe()
    assert text.splitlines()[0] == 'Business: Acme'
    assert 'Services: patios' in text
    assert 'Service areas: Dublin (Central Ohio)' in text
