"""
Typed tool registry.

Every tool the model may call has a ToolName and a ToolSpec: description,
JSON input schema and an async handler taking the raw argument dict.
Registration is validated up front, so a bad definition fails at startup
instead of surfacing mid-conversation as an unknown-tool error.

Usage:
    registry = ToolRegistry()
    registry.register(ToolSpec(ToolName.LIST_ACCOUNTS, 'List accounts', schema, handler))
    result = await registry.invoke('list_accounts', {})
"""

import inspect
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Optional, Union

from .errors import ToolRegistrationError, UnknownToolError

logger = logging.getLogger(__name__)

ToolHandler = Callable[[Dict[str, Any]], Awaitable[Any]]


class ToolName(str, Enum):
    # Google Ads (read)
    LIST_ACCOUNTS = 'list_accounts'
    GET_CAMPAIGN_PERFORMANCE = 'get_campaign_performance'
    GET_KEYWORD_PERFORMANCE = 'get_keyword_performance'
    GET_SEARCH_TERMS = 'get_search_terms'
    QUERY = 'query'
    # Google Ads (mutations, dry run by default)
    ADD_NEGATIVE_KEYWORDS = 'add_negative_keywords'
    UPDATE_CAMPAIGN_BUDGETS = 'update_campaign_budgets'
    CREATE_AD_VARIATION = 'create_ad_variation'
    # DataForSEO
    GET_KEYWORD_DATA = 'get_keyword_data'
    GET_COMPETITOR_KEYWORDS = 'get_competitor_keywords'
    GET_SERP_COMPETITORS = 'get_serp_competitors'
    GET_KEYWORD_SUGGESTIONS = 'get_keyword_suggestions'
    GET_SERP_RESULTS = 'get_serp_results'
    # Notifications
    SEND_SLACK_ALERT = 'send_slack_alert'
    # Specialist agents
    RUN_HEALTH_CHECK = 'run_health_check'
    RUN_COMPETITOR_INTEL = 'run_competitor_intel'
    OPTIMIZE_BUDGETS = 'optimize_budgets'
    ANALYZE_NEGATIVE_KEYWORDS = 'analyze_negative_keywords'
    TEST_AD_COPY = 'test_ad_copy'
    CREATE_CAMPAIGN = 'create_campaign'


@dataclass(frozen=True)
class ToolSpec:
    name: ToolName
    description: str
    input_schema: Dict[str, Any]
    handler: ToolHandler = field(compare=False)

    def definition(self) -> Dict[str, Any]:
        """Tool definition in the Anthropic Messages API shape."""
        return {
            'name': self.name.value,
            'description': self.description,
            'input_schema': self.input_schema,
        }


class ToolRegistry:
    """Ordered mapping of ToolName -> ToolSpec."""

    def __init__(self, specs: Optional[Iterable[ToolSpec]] = None):
        self._specs: Dict[ToolName, ToolSpec] = {}
        for spec in specs or ():
            self.register(spec)

    def register(self, spec: ToolSpec) -> None:
        if not isinstance(spec.name, ToolName):
            raise ToolRegistrationError(f'Tool name must be a ToolName, got {spec.name!r}')
        if spec.name in self._specs:
            raise ToolRegistrationError(f'Tool already registered: {spec.name.value}')
        if not inspect.iscoroutinefunction(spec.handler):
            raise ToolRegistrationError(
                f'Handler for {spec.name.value} must be an async function'
            )
        if not isinstance(spec.input_schema, dict) or spec.input_schema.get('type') != 'object':
            raise ToolRegistrationError(
                f'Input schema for {spec.name.value} must be a JSON object schema'
            )
        self._specs[spec.name] = spec
        logger.debug('Registered tool %s', spec.name.value)

    def register_all(self, specs: Iterable[ToolSpec]) -> None:
        for spec in specs:
            self.register(spec)

    def resolve(self, name: Union[str, ToolName]) -> ToolSpec:
        try:
            key = ToolName(name)
        except ValueError:
            raise UnknownToolError(str(name)) from None
        spec = self._specs.get(key)
        if spec is None:
            raise UnknownToolError(key.value)
        return spec

    async def invoke(self, name: Union[str, ToolName], arguments: Optional[Dict[str, Any]] = None) -> Any:
        spec = self.resolve(name)
        return await spec.handler(dict(arguments or {}))

    def definitions(self) -> List[Dict[str, Any]]:
        return [spec.definition() for spec in self._specs.values()]

    def subset(self, names: Iterable[ToolName]) -> 'ToolRegistry':
        """A new registry holding only the named tools (unknown names raise)."""
        return ToolRegistry(self.resolve(name) for name in names)

    @property
    def names(self) -> List[ToolName]:
        return list(self._specs)

    def __contains__(self, name: object) -> bool:
        try:
            return ToolName(name) in self._specs
        except ValueError:
            return False

    def __len__(self) -> int:
        return len(self._specs)
