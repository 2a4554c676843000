"""
Configuration management for the PPC agent.

Every setting comes from the environment (a `.env` file in the working
directory is loaded first). `load_config()` is the single entry point;
the sub-models can also be built on their own in tests.
"""

import os
import shlex
from typing import Dict, List, Optional

from dotenv import load_dotenv
from pydantic import BaseModel, Field

# Load environment variables from .env file
load_dotenv()

DEFAULT_MODEL = 'claude-sonnet-4-5-20250929'
DEFAULT_MCP_COMMAND = 'npx -y @channel47/google-ads-mcp@latest'
DATAFORSEO_BASE_URL = 'https://api.dataforseo.com/v3'


class AgentSettings(BaseModel):
    """LLM settings shared by the orchestrator and every specialist."""

    anthropic_api_key: str = ''
    model: str = DEFAULT_MODEL
    max_tokens: int = 8192
    max_iterations: int = 10
    log_level: str = 'INFO'


class GoogleAdsCredentials(BaseModel):
    """Credentials forwarded to the Google Ads MCP child process."""

    developer_token: str = ''
    client_id: str = ''
    client_secret: str = ''
    refresh_token: str = ''
    login_customer_id: str = ''
    default_customer_id: str = ''

    def as_env(self) -> Dict[str, str]:
        """Environment variables understood by the MCP server (unset ones omitted)."""
        env = {
            'GOOGLE_ADS_DEVELOPER_TOKEN': self.developer_token,
            'GOOGLE_ADS_CLIENT_ID': self.client_id,
            'GOOGLE_ADS_CLIENT_SECRET': self.client_secret,
            'GOOGLE_ADS_REFRESH_TOKEN': self.refresh_token,
            'GOOGLE_ADS_LOGIN_CUSTOMER_ID': self.login_customer_id,
            'GOOGLE_ADS_DEFAULT_CUSTOMER_ID': self.default_customer_id,
        }
        return {key: value for key, value in env.items() if value}

    def missing(self) -> List[str]:
        required = ('developer_token', 'client_id', 'client_secret', 'refresh_token')
        return [name for name in required if not getattr(self, name)]


class McpServerConfig(BaseModel):
    """How to launch the Google Ads MCP server."""

    command: List[str] = Field(
        default_factory=lambda: shlex.split(DEFAULT_MCP_COMMAND)
    )
    request_timeout: float = 60.0


class DataForSEOConfig(BaseModel):
    login: str = ''
    password: str = ''
    base_url: str = DATAFORSEO_BASE_URL

    @property
    def configured(self) -> bool:
        return bool(self.login and self.password)


class NotificationConfig(BaseModel):
    slack_webhook_url: str = ''

    @property
    def configured(self) -> bool:
        return bool(self.slack_webhook_url)


class BusinessProfile(BaseModel):
    """The advertiser the agent works for; injected into prompts."""

    name: str = 'Stiltner Landscapes'
    website: str = 'https://stiltnerlandscapes.com'
    phone: str = '(614) 707-4788'
    services: List[str] = Field(
        default_factory=lambda: [
            'landscape design',
            'hardscaping',
            'patios',
            'retaining walls',
            'landscape lighting',
            'lawn care',
        ]
    )
    service_areas: List[str] = Field(
        default_factory=lambda: ['Dublin', 'Powell', 'Galena', 'New Albany']
    )
    region: str = 'Central Ohio'

    def describe(self) -> str:
        return (
            f'Business: {self.name}\n'
            f'Website: {self.website}\n'
            f'Phone: {self.phone}\n'
            f'Services: {", ".join(self.services)}\n'
            f'Service areas: {", ".join(self.service_areas)} ({self.region})'
        )


class WebhookServerConfig(BaseModel):
    host: str = '0.0.0.0'
    port: int = 3847


class PPCAgentConfig(BaseModel):
    """Everything the agent needs, grouped by concern."""

    agent: AgentSettings = Field(default_factory=AgentSettings)
    google_ads: GoogleAdsCredentials = Field(default_factory=GoogleAdsCredentials)
    mcp: McpServerConfig = Field(default_factory=McpServerConfig)
    dataforseo: DataForSEOConfig = Field(default_factory=DataForSEOConfig)
    notifications: NotificationConfig = Field(default_factory=NotificationConfig)
    business: BusinessProfile = Field(default_factory=BusinessProfile)
    server: WebhookServerConfig = Field(default_factory=WebhookServerConfig)


def load_config() -> PPCAgentConfig:
    """Load configuration from environment variables."""
    return PPCAgentConfig(
        agent=AgentSettings(
            anthropic_api_key=os.getenv('ANTHROPIC_API_KEY', ''),
            model=os.getenv('AGENT_MODEL', DEFAULT_MODEL),
            max_tokens=int(os.getenv('AGENT_MAX_TOKENS', '8192')),
            max_iterations=int(os.getenv('AGENT_MAX_ITERATIONS', '10')),
            log_level=os.getenv('PPC_LOG_LEVEL', 'INFO'),
        ),
        google_ads=GoogleAdsCredentials(
            developer_token=os.getenv('GOOGLE_ADS_DEVELOPER_TOKEN', ''),
            client_id=os.getenv('GOOGLE_ADS_CLIENT_ID', ''),
            client_secret=os.getenv('GOOGLE_ADS_CLIENT_SECRET', ''),
            refresh_token=os.getenv('GOOGLE_ADS_REFRESH_TOKEN', ''),
            login_customer_id=os.getenv('GOOGLE_ADS_LOGIN_CUSTOMER_ID', ''),
            default_customer_id=os.getenv('GOOGLE_ADS_DEFAULT_CUSTOMER_ID', ''),
        ),
        mcp=McpServerConfig(
            command=shlex.split(
                os.getenv('MCP_SERVER_COMMAND', DEFAULT_MCP_COMMAND)
            ),
            request_timeout=float(os.getenv('MCP_REQUEST_TIMEOUT_SECONDS', '60')),
        ),
        dataforseo=DataForSEOConfig(
            login=os.getenv('DATAFORSEO_LOGIN', ''),
            password=os.getenv('DATAFORSEO_PASSWORD', ''),
            base_url=os.getenv('DATAFORSEO_BASE_URL', DATAFORSEO_BASE_URL),
        ),
        notifications=NotificationConfig(
            slack_webhook_url=os.getenv('SLACK_WEBHOOK_URL', ''),
        ),
        business=_load_business_profile(),
        server=WebhookServerConfig(
            host=os.getenv('PPC_HOST', '0.0.0.0'),
            port=int(os.getenv('PORT', '3847')),
        ),
    )


def _load_business_profile() -> BusinessProfile:
    defaults = BusinessProfile()
    return BusinessProfile(
        name=os.getenv('PPC_BUSINESS_NAME', defaults.name),
        website=os.getenv('PPC_BUSINESS_WEBSITE', defaults.website),
        phone=os.getenv('PPC_BUSINESS_PHONE', defaults.phone),
        services=_parse_list(os.getenv('PPC_BUSINESS_SERVICES')) or defaults.services,
        service_areas=(
            _parse_list(os.getenv('PPC_BUSINESS_SERVICE_AREAS'))
            or defaults.service_areas
        ),
        region=os.getenv('PPC_BUSINESS_REGION', defaults.region),
    )


def _parse_list(value: Optional[str]) -> List[str]:
    """Parse a comma-separated environment value."""
    if not value:
        return []
    return [item.strip() for item in value.split(',') if item.strip()]
