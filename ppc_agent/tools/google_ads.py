"""
Google Ads tools, served through the MCP bridge.

Read tools build GAQL, run it with `bridge.query()` and flatten the rows
(cost-like fields arrive in micros and are converted to currency units).
Mutation tools build Google Ads operations and send them with
`bridge.mutate()`; they validate only (dry run) unless the caller passes
`dry_run: false`.
"""

import functools
import logging
import re
from typing import TYPE_CHECKING, Any, Dict, List, Optional

from ..errors import GaqlValidationError
from ..tool_registry import ToolName, ToolSpec

if TYPE_CHECKING:
    from ..context import AgentContext

logger = logging.getLogger(__name__)

MICROS = 1_000_000
DATE_RANGE_PATTERN = re.compile(r'^[A-Z0-9_]+$')
BLOCKED_GAQL_KEYWORDS = ('INSERT', 'UPDATE', 'DELETE', 'CREATE', 'DROP', 'MUTATE')
BLOCKED_GAQL_PATTERN = re.compile(
    r'\b(' + '|'.join(BLOCKED_GAQL_KEYWORDS) + r')\b', re.IGNORECASE
)

# Google Ads enum values used by the mutate tool
KEYWORD_CRITERION_TYPE = 4
AD_GROUP_AD_STATUS_ENABLED = 2
NEGATIVE_MATCH_TYPES = {'EXACT': 2, 'PHRASE': 3, 'BROAD': 4}


# =============================================================================
# Row helpers
# =============================================================================


def _camel(name: str) -> str:
    head, *rest = name.split('_')
    return head + ''.join(part.title() for part in rest)


def _field(row: Dict[str, Any], *path: str) -> Any:
    """Look up a nested field, accepting snake_case or camelCase keys."""
    value: Any = row
    for key in path:
        if not isinstance(value, dict):
            return None
        if key in value:
            value = value[key]
        else:
            value = value.get(_camel(key))
    return value


def _number(value: Any) -> float:
    try:
        return float(value or 0)
    except (TypeError, ValueError):
        return 0.0


def _micros(value: Any) -> float:
    return round(_number(value) / MICROS, 2)


def _rows(result: Any) -> Optional[List[Dict[str, Any]]]:
    """Extract the row list from a query reply, or None if it has no rows."""
    if isinstance(result, list):
        return [row for row in result if isinstance(row, dict)]
    if isinstance(result, dict):
        for key in ('results', 'rows', 'data'):
            if isinstance(result.get(key), list):
                return [row for row in result[key] if isinstance(row, dict)]
    return None


def _date_range(args: Dict[str, Any]) -> str:
    date_range = str(args.get('date_range') or 'LAST_30_DAYS').upper()
    if not DATE_RANGE_PATTERN.match(date_range):
        raise GaqlValidationError(f'Invalid date range: {date_range}')
    return date_range


def _int_arg(args: Dict[str, Any], key: str, default: int) -> int:
    try:
        return max(0, int(args.get(key, default)))
    except (TypeError, ValueError):
        raise GaqlValidationError(f'{key} must be an integer') from None


def _customer_id(context: 'AgentContext', args: Dict[str, Any]) -> str:
    customer_id = str(args.get('customer_id') or context.default_customer_id or '')
    customer_id = customer_id.replace('-', '')
    if not customer_id:
        raise ValueError(
            'customer_id is required (or set GOOGLE_ADS_DEFAULT_CUSTOMER_ID)'
        )
    return customer_id


def check_read_only(gaql: str) -> None:
    """Reject GAQL containing mutation keywords."""
    match = BLOCKED_GAQL_PATTERN.search(gaql)
    if match:
        raise GaqlValidationError(
            f'Mutation keyword "{match.group(1).upper()}" not allowed in query tool. '
            'Use mutation tools instead.'
        )


# =============================================================================
# READ TOOLS
# =============================================================================


async def list_accounts(context: 'AgentContext', args: Dict[str, Any]) -> Any:
    bridge = await context.get_bridge()
    return await bridge.list_accounts()


async def get_campaign_performance(context: 'AgentContext', args: Dict[str, Any]) -> Any:
    date_range = _date_range(args)
    status = str(args.get('campaign_status') or 'ALL').upper()
    if status not in ('ENABLED', 'PAUSED', 'ALL'):
        raise GaqlValidationError(f'Invalid campaign_status: {status}')
    status_filter = '' if status == 'ALL' else f"AND campaign.status = '{status}'"

    gaql = f"""
        SELECT
          campaign.id,
          campaign.name,
          campaign.status,
          campaign.advertising_channel_type,
          metrics.impressions,
          metrics.clicks,
          metrics.cost_micros,
          metrics.conversions,
          metrics.conversions_value,
          metrics.average_cpc,
          metrics.ctr,
          metrics.cost_per_conversion
        FROM campaign
        WHERE segments.date DURING {date_range}
        {status_filter}
        ORDER BY metrics.cost_micros DESC
    """
    bridge = await context.get_bridge()
    result = await bridge.query(gaql, args.get('customer_id'))
    rows = _rows(result)
    if rows is None:
        return result
    return [
        {
            'id': _field(row, 'campaign', 'id'),
            'name': _field(row, 'campaign', 'name'),
            'status': _field(row, 'campaign', 'status'),
            'channel': _field(row, 'campaign', 'advertising_channel_type'),
            'impressions': _number(_field(row, 'metrics', 'impressions')),
            'clicks': _number(_field(row, 'metrics', 'clicks')),
            'cost': _micros(_field(row, 'metrics', 'cost_micros')),
            'conversions': _number(_field(row, 'metrics', 'conversions')),
            'conversion_value': _number(_field(row, 'metrics', 'conversions_value')),
            'avg_cpc': _micros(_field(row, 'metrics', 'average_cpc')),
            'ctr': _number(_field(row, 'metrics', 'ctr')),
            'cost_per_conversion': _micros(_field(row, 'metrics', 'cost_per_conversion')),
        }
        for row in rows
    ]


async def get_keyword_performance(context: 'AgentContext', args: Dict[str, Any]) -> Any:
    date_range = _date_range(args)
    min_impressions = _int_arg(args, 'min_impressions', 0)
    limit = _int_arg(args, 'limit', 50)

    gaql = f"""
        SELECT
          ad_group_criterion.keyword.text,
          ad_group_criterion.keyword.match_type,
          ad_group.name,
          campaign.name,
          metrics.impressions,
          metrics.clicks,
          metrics.cost_micros,
          metrics.conversions,
          metrics.average_cpc,
          metrics.ctr
        FROM keyword_view
        WHERE segments.date DURING {date_range}
          AND metrics.impressions >= {min_impressions}
        ORDER BY metrics.cost_micros DESC
        LIMIT {limit}
    """
    bridge = await context.get_bridge()
    result = await bridge.query(gaql, args.get('customer_id'))
    rows = _rows(result)
    if rows is None:
        return result
    return [
        {
            'keyword': _field(row, 'ad_group_criterion', 'keyword', 'text'),
            'match_type': _field(row, 'ad_group_criterion', 'keyword', 'match_type'),
            'ad_group': _field(row, 'ad_group', 'name'),
            'campaign': _field(row, 'campaign', 'name'),
            'impressions': _number(_field(row, 'metrics', 'impressions')),
            'clicks': _number(_field(row, 'metrics', 'clicks')),
            'cost': _micros(_field(row, 'metrics', 'cost_micros')),
            'conversions': _number(_field(row, 'metrics', 'conversions')),
            'avg_cpc': _micros(_field(row, 'metrics', 'average_cpc')),
            'ctr': _number(_field(row, 'metrics', 'ctr')),
        }
        for row in rows
    ]


async def get_search_terms(context: 'AgentContext', args: Dict[str, Any]) -> Any:
    date_range = _date_range(args)
    limit = _int_arg(args, 'limit', 100)

    gaql = f"""
        SELECT
          search_term_view.search_term,
          campaign.name,
          ad_group.name,
          metrics.impressions,
          metrics.clicks,
          metrics.cost_micros,
          metrics.conversions
        FROM search_term_view
        WHERE segments.date DURING {date_range}
        ORDER BY metrics.impressions DESC
        LIMIT {limit}
    """
    bridge = await context.get_bridge()
    result = await bridge.query(gaql, args.get('customer_id'))
    rows = _rows(result)
    if rows is None:
        return result
    return [
        {
            'search_term': _field(row, 'search_term_view', 'search_term'),
            'campaign': _field(row, 'campaign', 'name'),
            'ad_group': _field(row, 'ad_group', 'name'),
            'impressions': _number(_field(row, 'metrics', 'impressions')),
            'clicks': _number(_field(row, 'metrics', 'clicks')),
            'cost': _micros(_field(row, 'metrics', 'cost_micros')),
            'conversions': _number(_field(row, 'metrics', 'conversions')),
        }
        for row in rows
    ]


async def run_query(context: 'AgentContext', args: Dict[str, Any]) -> Any:
    gaql = args.get('gaql')
    if not gaql or not isinstance(gaql, str):
        raise GaqlValidationError('gaql is required')
    check_read_only(gaql)
    bridge = await context.get_bridge()
    return await bridge.query(gaql, args.get('customer_id'))


# =============================================================================
# MUTATIONS
# =============================================================================


def negative_keyword_operations(
    customer_id: str,
    campaign_id: str,
    keywords: List[Dict[str, Any]],
) -> List[Dict[str, Any]]:
    operations = []
    for kw in keywords:
        text = str(kw.get('keyword') or kw.get('text') or '').strip()
        if not text:
            raise ValueError('Each negative keyword needs a keyword')
        match_type = str(kw.get('match_type') or 'PHRASE').upper()
        if match_type not in NEGATIVE_MATCH_TYPES:
            raise ValueError(f'Invalid match_type: {match_type}')
        operations.append({
            'entity': 'campaign_criterion',
            'operation': 'create',
            'resource': {
                'campaign': f'customers/{customer_id}/campaigns/{campaign_id}',
                'type': KEYWORD_CRITERION_TYPE,
                'negative': True,
                'keyword': {
                    'text': text,
                    'match_type': NEGATIVE_MATCH_TYPES[match_type],
                },
            },
        })
    return operations


def budget_update_operations(
    customer_id: str,
    changes: List[Dict[str, Any]],
) -> List[Dict[str, Any]]:
    operations = []
    for change in changes:
        budget_id = change.get('budget_id')
        if not budget_id:
            raise ValueError('Each budget change needs a budget_id')
        daily_budget = _number(change.get('daily_budget'))
        if daily_budget < 1:
            raise ValueError(f'Daily budget for {budget_id} must be at least $1')
        operations.append({
            'entity': 'campaign_budget',
            'operation': 'update',
            'resource': {
                'resource_name': f'customers/{customer_id}/campaignBudgets/{budget_id}',
                'amount_micros': int(round(daily_budget * MICROS)),
            },
            'update_mask': ['amount_micros'],
        })
    return operations


def ad_variation_operation(
    customer_id: str,
    ad_group_id: str,
    variation: Dict[str, Any],
    final_url: str,
) -> Dict[str, Any]:
    headlines = [h for h in variation.get('headlines') or [] if h]
    descriptions = [d for d in variation.get('descriptions') or [] if d]
    if len(headlines) < 3 or len(descriptions) < 2:
        raise ValueError('An ad variation needs at least 3 headlines and 2 descriptions')
    rsa: Dict[str, Any] = {
        'headlines': [{'text': text[:30]} for text in headlines[:15]],
        'descriptions': [{'text': text[:90]} for text in descriptions[:4]],
    }
    if variation.get('path1'):
        rsa['path1'] = str(variation['path1'])[:15]
    if variation.get('path2'):
        rsa['path2'] = str(variation['path2'])[:15]
    return {
        'entity': 'ad_group_ad',
        'operation': 'create',
        'resource': {
            'ad_group': f'customers/{customer_id}/adGroups/{ad_group_id}',
            'status': AD_GROUP_AD_STATUS_ENABLED,
            'ad': {
                'responsive_search_ad': rsa,
                'final_urls': [final_url],
            },
        },
    }


async def _mutate(
    context: 'AgentContext',
    customer_id: str,
    operations: List[Dict[str, Any]],
    dry_run: bool,
    partial_failure: bool,
) -> Dict[str, Any]:
    logger.info(
        '%s: %d operation(s) for customer %s',
        'DRY RUN' if dry_run else 'LIVE', len(operations), customer_id,
    )
    bridge = await context.get_bridge()
    result = await bridge.mutate(
        operations,
        customer_id=customer_id,
        dry_run=dry_run,
        partial_failure=partial_failure,
    )
    return {
        'dry_run': dry_run,
        'operations': len(operations),
        'result': result,
    }


async def add_negative_keywords(context: 'AgentContext', args: Dict[str, Any]) -> Dict[str, Any]:
    campaign_id = args.get('campaign_id')
    if not campaign_id:
        raise ValueError('campaign_id is required')
    keywords = args.get('keywords') or []
    if not keywords:
        raise ValueError('keywords is required')
    customer_id = _customer_id(context, args)
    operations = negative_keyword_operations(customer_id, str(campaign_id), keywords)
    return await _mutate(
        context, customer_id, operations,
        dry_run=args.get('dry_run', True) is not False,
        partial_failure=True,
    )


async def update_campaign_budgets(context: 'AgentContext', args: Dict[str, Any]) -> Dict[str, Any]:
    changes = args.get('changes') or []
    if not changes:
        raise ValueError('changes is required')
    customer_id = _customer_id(context, args)
    operations = budget_update_operations(customer_id, changes)
    return await _mutate(
        context, customer_id, operations,
        dry_run=args.get('dry_run', True) is not False,
        partial_failure=True,
    )


async def create_ad_variation(context: 'AgentContext', args: Dict[str, Any]) -> Dict[str, Any]:
    ad_group_id = args.get('ad_group_id')
    if not ad_group_id:
        raise ValueError('ad_group_id is required')
    customer_id = _customer_id(context, args)
    final_url = args.get('final_url') or context.config.business.website
    operation = ad_variation_operation(
        customer_id, str(ad_group_id), args.get('variation') or {}, final_url
    )
    return await _mutate(
        context, customer_id, [operation],
        dry_run=args.get('dry_run', True) is not False,
        partial_failure=False,
    )


# =============================================================================
# TOOL DEFINITIONS
# =============================================================================

_DATE_RANGE_PROPERTY = {
    'type': 'string',
    'description': 'GAQL date range like LAST_30_DAYS, LAST_7_DAYS, THIS_MONTH',
    'default': 'LAST_30_DAYS',
}
_CUSTOMER_ID_PROPERTY = {
    'type': 'string',
    'description': 'Google Ads customer ID (defaults to the configured account)',
}
_DRY_RUN_PROPERTY = {
    'type': 'boolean',
    'description': 'Validate only (default true). Set to false to apply the change.',
    'default': True,
}


def google_ads_read_tools(context: 'AgentContext') -> List[ToolSpec]:
    return [
        ToolSpec(
            ToolName.LIST_ACCOUNTS,
            'List all Google Ads accounts accessible via the MCC',
            {'type': 'object', 'properties': {}, 'required': []},
            functools.partial(list_accounts, context),
        ),
        ToolSpec(
            ToolName.GET_CAMPAIGN_PERFORMANCE,
            'Get performance metrics for campaigns over a date range',
            {
                'type': 'object',
                'properties': {
                    'date_range': _DATE_RANGE_PROPERTY,
                    'campaign_status': {
                        'type': 'string',
                        'enum': ['ENABLED', 'PAUSED', 'ALL'],
                        'default': 'ALL',
                    },
                    'customer_id': _CUSTOMER_ID_PROPERTY,
                },
                'required': [],
            },
            functools.partial(get_campaign_performance, context),
        ),
        ToolSpec(
            ToolName.GET_KEYWORD_PERFORMANCE,
            'Get performance metrics for keywords',
            {
                'type': 'object',
                'properties': {
                    'date_range': _DATE_RANGE_PROPERTY,
                    'min_impressions': {
                        'type': 'number',
                        'description': 'Minimum impressions filter',
                        'default': 0,
                    },
                    'limit': {'type': 'number', 'description': 'Max results to return', 'default': 50},
                    'customer_id': _CUSTOMER_ID_PROPERTY,
                },
                'required': [],
            },
            functools.partial(get_keyword_performance, context),
        ),
        ToolSpec(
            ToolName.GET_SEARCH_TERMS,
            'Get search terms that triggered your ads',
            {
                'type': 'object',
                'properties': {
                    'date_range': _DATE_RANGE_PROPERTY,
                    'limit': {'type': 'number', 'default': 100},
                    'customer_id': _CUSTOMER_ID_PROPERTY,
                },
                'required': [],
            },
            functools.partial(get_search_terms, context),
        ),
        ToolSpec(
            ToolName.QUERY,
            'Execute a raw read-only GAQL (Google Ads Query Language) query',
            {
                'type': 'object',
                'properties': {
                    'gaql': {'type': 'string', 'description': 'The GAQL query to execute'},
                    'customer_id': _CUSTOMER_ID_PROPERTY,
                },
                'required': ['gaql'],
            },
            functools.partial(run_query, context),
        ),
    ]


def google_ads_mutation_tools(context: 'AgentContext') -> List[ToolSpec]:
    return [
        ToolSpec(
            ToolName.ADD_NEGATIVE_KEYWORDS,
            'Add negative keywords to a campaign. Dry run unless dry_run is false.',
            {
                'type': 'object',
                'properties': {
                    'campaign_id': {'type': 'string'},
                    'keywords': {
                        'type': 'array',
                        'items': {
                            'type': 'object',
                            'properties': {
                                'keyword': {'type': 'string'},
                                'match_type': {
                                    'type': 'string',
                                    'enum': ['EXACT', 'PHRASE', 'BROAD'],
                                    'default': 'PHRASE',
                                },
                            },
                            'required': ['keyword'],
                        },
                    },
                    'customer_id': _CUSTOMER_ID_PROPERTY,
                    'dry_run': _DRY_RUN_PROPERTY,
                },
                'required': ['campaign_id', 'keywords'],
            },
            functools.partial(add_negative_keywords, context),
        ),
        ToolSpec(
            ToolName.UPDATE_CAMPAIGN_BUDGETS,
            'Set new daily budgets (in account currency) on campaign budgets. '
            'Dry run unless dry_run is false.',
            {
                'type': 'object',
                'properties': {
                    'changes': {
                        'type': 'array',
                        'items': {
                            'type': 'object',
                            'properties': {
                                'budget_id': {'type': 'string'},
                                'daily_budget': {'type': 'number'},
                            },
                            'required': ['budget_id', 'daily_budget'],
                        },
                    },
                    'customer_id': _CUSTOMER_ID_PROPERTY,
                    'dry_run': _DRY_RUN_PROPERTY,
                },
                'required': ['changes'],
            },
            functools.partial(update_campaign_budgets, context),
        ),
        ToolSpec(
            ToolName.CREATE_AD_VARIATION,
            'Create a responsive search ad variation in an ad group. '
            'Dry run unless dry_run is false.',
            {
                'type': 'object',
                'properties': {
                    'ad_group_id': {'type': 'string'},
                    'variation': {
                        'type': 'object',
                        'properties': {
                            'headlines': {'type': 'array', 'items': {'type': 'string'}},
                            'descriptions': {'type': 'array', 'items': {'type': 'string'}},
                            'path1': {'type': 'string'},
                            'path2': {'type': 'string'},
                        },
                        'required': ['headlines', 'descriptions'],
                    },
                    'final_url': {'type': 'string'},
                    'customer_id': _CUSTOMER_ID_PROPERTY,
                    'dry_run': _DRY_RUN_PROPERTY,
                },
                'required': ['ad_group_id', 'variation'],
            },
            functools.partial(create_ad_variation, context),
        ),
    ]
