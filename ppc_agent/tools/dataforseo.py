"""
DataForSEO tools: keyword volumes, competitor keywords, SERP data.

Every endpoint is a live POST taking a one-element JSON array of tasks;
the useful payload is `tasks[0].result`.
"""

import functools
import logging
from typing import TYPE_CHECKING, Any, Dict, List

import httpx

from ..errors import CircuitBreakerOpenError, DataForSEOError
from ..tool_registry import ToolName, ToolSpec

if TYPE_CHECKING:
    from ..context import AgentContext

logger = logging.getLogger(__name__)

DEFAULT_LOCATION = 'United States'
TASK_OK = 20000


async def call_dataforseo(
    context: 'AgentContext',
    endpoint: str,
    body: Dict[str, Any],
) -> List[Dict[str, Any]]:
    """POST one task to DataForSEO and return its result list."""
    if not context.config.dataforseo.configured:
        raise DataForSEOError('DataForSEO credentials not configured')

    try:
        resp = await context.dataforseo_http.request('POST', endpoint, json=[body])
    except (httpx.HTTPError, CircuitBreakerOpenError) as e:
        raise DataForSEOError(f'DataForSEO request failed: {e}') from e
    if resp.status_code >= 400:
        raise DataForSEOError(f'DataForSEO API error: {resp.status_code}')

    data = resp.json()
    tasks = data.get('tasks') or []
    if not tasks:
        return []
    task = tasks[0]
    status_code = task.get('status_code')
    if status_code is not None and status_code != TASK_OK:
        logger.warning('DataForSEO task %s failed: %s', endpoint, task.get('status_message'))
        raise DataForSEOError(
            f"DataForSEO task error {status_code}: {task.get('status_message')}"
        )
    return task.get('result') or []


def _items(results: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    return [item for result in results for item in (result.get('items') or [])]


def _require_list(args: Dict[str, Any], key: str) -> List[str]:
    values = args.get(key)
    if isinstance(values, str):
        values = [values]
    if not values:
        raise ValueError(f'{key} is required')
    return [str(v) for v in values]


def _require_str(args: Dict[str, Any], key: str) -> str:
    value = args.get(key)
    if not value:
        raise ValueError(f'{key} is required')
    return str(value)


# =============================================================================
# HANDLERS
# =============================================================================


async def get_keyword_data(context: 'AgentContext', args: Dict[str, Any]) -> List[Dict[str, Any]]:
    results = await call_dataforseo(context, '/keywords_data/google_ads/search_volume/live', {
        'keywords': _require_list(args, 'keywords'),
        'location_name': args.get('location_name', DEFAULT_LOCATION),
        'language_code': args.get('language_code', 'en'),
    })
    return [
        {
            'keyword': item.get('keyword'),
            'search_volume': item.get('search_volume'),
            'cpc': item.get('cpc'),
            'competition': item.get('competition'),
            'competition_index': item.get('competition_index'),
            'monthly_searches': item.get('monthly_searches'),
        }
        for item in results
    ]


async def get_competitor_keywords(context: 'AgentContext', args: Dict[str, Any]) -> List[Dict[str, Any]]:
    results = await call_dataforseo(context, '/dataforseo_labs/google/ranked_keywords/live', {
        'target': _require_str(args, 'domain'),
        'location_name': args.get('location_name', DEFAULT_LOCATION),
        'language_code': 'en',
        'limit': args.get('limit', 100),
        'item_types': ['paid'],
        'order_by': ['keyword_data.keyword_info.search_volume,desc'],
    })
    keywords = []
    for item in _items(results):
        keyword_data = item.get('keyword_data') or {}
        info = keyword_data.get('keyword_info') or {}
        serp_item = (item.get('ranked_serp_element') or {}).get('serp_item') or {}
        keywords.append({
            'keyword': keyword_data.get('keyword'),
            'search_volume': info.get('search_volume'),
            'cpc': info.get('cpc'),
            'position': serp_item.get('rank_absolute'),
            'url': serp_item.get('url'),
        })
    return keywords


async def get_serp_competitors(context: 'AgentContext', args: Dict[str, Any]) -> List[Dict[str, Any]]:
    results = await call_dataforseo(context, '/dataforseo_labs/google/serp_competitors/live', {
        'keywords': _require_list(args, 'keywords'),
        'location_name': args.get('location_name', DEFAULT_LOCATION),
        'language_code': 'en',
        'item_types': ['paid'],
        'limit': 20,
    })
    return [
        {
            'domain': item.get('domain'),
            'avg_position': item.get('avg_position'),
            'keywords_count': item.get('se_results_count'),
            'etv': item.get('etv'),
            'visibility': item.get('visibility'),
        }
        for item in _items(results)
    ]


async def get_keyword_suggestions(context: 'AgentContext', args: Dict[str, Any]) -> List[Dict[str, Any]]:
    results = await call_dataforseo(context, '/dataforseo_labs/google/keyword_suggestions/live', {
        'keyword': _require_str(args, 'keyword'),
        'location_name': args.get('location_name', DEFAULT_LOCATION),
        'language_code': 'en',
        'limit': args.get('limit', 50),
        'order_by': ['keyword_info.search_volume,desc'],
    })
    suggestions = []
    for item in _items(results):
        info = item.get('keyword_info') or {}
        suggestions.append({
            'keyword': item.get('keyword'),
            'search_volume': info.get('search_volume'),
            'cpc': info.get('cpc'),
            'competition': info.get('competition_level'),
        })
    return suggestions


async def get_serp_results(context: 'AgentContext', args: Dict[str, Any]) -> Dict[str, List[Dict[str, Any]]]:
    results = await call_dataforseo(context, '/serp/google/organic/live/advanced', {
        'keyword': _require_str(args, 'keyword'),
        'location_name': args.get('location_name', DEFAULT_LOCATION),
        'language_code': 'en',
        'depth': 20,
    })
    items = _items(results)
    return {
        'organic': [
            {
                'position': item.get('rank_absolute'),
                'title': item.get('title'),
                'url': item.get('url'),
                'domain': item.get('domain'),
            }
            for item in items if item.get('type') == 'organic'
        ],
        'paid': [
            {
                'position': item.get('rank_absolute'),
                'title': item.get('title'),
                'url': item.get('url'),
                'domain': item.get('domain'),
                'description': item.get('description'),
            }
            for item in items if item.get('type') == 'paid'
        ],
    }


# =============================================================================
# TOOL DEFINITIONS
# =============================================================================

_LOCATION_PROPERTY = {'type': 'string', 'default': DEFAULT_LOCATION}


def dataforseo_tools(context: 'AgentContext') -> List[ToolSpec]:
    return [
        ToolSpec(
            ToolName.GET_KEYWORD_DATA,
            'Get search volume, CPC, and competition data for keywords',
            {
                'type': 'object',
                'properties': {
                    'keywords': {
                        'type': 'array',
                        'items': {'type': 'string'},
                        'description': 'List of keywords to research (max 1000)',
                    },
                    'location_name': _LOCATION_PROPERTY,
                    'language_code': {'type': 'string', 'default': 'en'},
                },
                'required': ['keywords'],
            },
            functools.partial(get_keyword_data, context),
        ),
        ToolSpec(
            ToolName.GET_COMPETITOR_KEYWORDS,
            'Get keywords a competitor domain ranks for in paid search',
            {
                'type': 'object',
                'properties': {
                    'domain': {
                        'type': 'string',
                        'description': 'Competitor domain (e.g., competitor.com)',
                    },
                    'location_name': _LOCATION_PROPERTY,
                    'limit': {'type': 'number', 'default': 100},
                },
                'required': ['domain'],
            },
            functools.partial(get_competitor_keywords, context),
        ),
        ToolSpec(
            ToolName.GET_SERP_COMPETITORS,
            'Find competitors bidding on the same keywords',
            {
                'type': 'object',
                'properties': {
                    'keywords': {
                        'type': 'array',
                        'items': {'type': 'string'},
                        'description': 'Keywords to analyze',
                    },
                    'location_name': _LOCATION_PROPERTY,
                },
                'required': ['keywords'],
            },
            functools.partial(get_serp_competitors, context),
        ),
        ToolSpec(
            ToolName.GET_KEYWORD_SUGGESTIONS,
            'Get keyword suggestions/ideas based on a seed keyword',
            {
                'type': 'object',
                'properties': {
                    'keyword': {'type': 'string', 'description': 'Seed keyword'},
                    'location_name': _LOCATION_PROPERTY,
                    'limit': {'type': 'number', 'default': 50},
                },
                'required': ['keyword'],
            },
            functools.partial(get_keyword_suggestions, context),
        ),
        ToolSpec(
            ToolName.GET_SERP_RESULTS,
            'Get live Google SERP results (organic and paid) for a keyword',
            {
                'type': 'object',
                'properties': {
                    'keyword': {'type': 'string'},
                    'location_name': _LOCATION_PROPERTY,
                },
                'required': ['keyword'],
            },
            functools.partial(get_serp_results, context),
        ),
    ]
