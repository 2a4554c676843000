"""
Specialist agents.

Each specialist is its own AgentLoop with a focused system prompt and a
small tool subset. The orchestrator sees every specialist as one tool, so
a request like "audit the account" costs the orchestrator a single tool
call while the specialist does the multi-step data gathering.

Usage:
    async with AgentContext() as ctx:
        result = await run_specialist(ctx, HEALTH_CHECK, 'Audit wasted spend for the last 30 days')
        print(result['summary'])
"""

import functools
import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Callable, Dict, List, Optional

from .agent_loop import AgentLoop
from .campaign_builder import extract_json, first_text
from .errors import CampaignDesignError
from .tool_registry import ToolName, ToolRegistry, ToolSpec
from .tools.dataforseo import dataforseo_tools
from .tools.google_ads import google_ads_mutation_tools, google_ads_read_tools

if TYPE_CHECKING:
    from .context import AgentContext

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SubAgentProfile:
    name: str
    system_prompt: str
    tool_factory: Callable[['AgentContext'], List[ToolSpec]]


HEALTH_CHECK_SYSTEM_PROMPT = """You are a Google Ads Health Check specialist. Your job is to analyze PPC account data and identify:

1. **Wasted Spend**: Keywords with clicks but zero conversions
2. **Efficiency Issues**: High CPC keywords relative to market rates
3. **Missing Opportunities**: Important keywords not being targeted
4. **Account Structure**: Problems with campaign/ad group organization
5. **Quality Score Issues**: Low quality scores affecting performance

When analyzing data:
- Calculate key metrics: CTR, CPC, CPA, Conversion Rate
- Compare to industry benchmarks for landscaping/home services:
  - CTR benchmark: >3%
  - CPC benchmark: $5-15 for landscaping
  - CPA benchmark: <$100 for leads
- Identify the top 3-5 most impactful issues
- Prioritize by potential cost savings or revenue gain

Output your analysis in a structured format with:
- Executive Summary
- Critical Issues (with $ impact)
- Recommendations (prioritized)
- Quick Wins (can be done immediately)"""

COMPETITOR_INTEL_SYSTEM_PROMPT = """You are a Competitive Intelligence specialist for PPC advertising. Your job is to:

1. **Identify Competitors**: Find who's bidding on similar keywords
2. **Analyze Their Strategy**: What keywords they target, their ad copy themes
3. **Find Gaps**: Keywords they're missing that you could target
4. **Find Opportunities**: Keywords where they're weak but have volume
5. **Estimate Their Spend**: Based on position and keyword volume

For landscaping/home services businesses:
- Focus on local intent keywords (city + service)
- Look for seasonal opportunities
- Identify high-value services competitors are pushing

Output structured intelligence including:
- Top 5 competitors with estimated spend
- Their strongest keywords
- Gap opportunities (they have, you don't)
- Attack opportunities (they're weak, you can win)"""

BUDGET_OPTIMIZER_SYSTEM_PROMPT = """You are a Budget Optimizer specialist for Google Ads. Your job is to:

1. **Analyze Campaign Performance**: Review spend, conversions, CPA across all campaigns
2. **Identify Opportunities**: Find campaigns with good CPA that could benefit from more budget
3. **Find Waste**: Identify campaigns with poor performance that should have budget reduced
4. **Calculate Reallocation**: Recommend specific budget moves with expected impact
5. **Consider Constraints**: Respect minimum viable budgets and campaign objectives

## Guidelines for Landscaping Business
- Peak season (March-October): More aggressive budgets
- Off season (Nov-Feb): Conservative spending
- Ideal CPA for leads: $50-100
- Minimum daily budget per campaign: $10

## Output Format
Provide:
- Current budget allocation summary
- Recommended reallocations (from -> to)
- Expected impact (additional conversions, CPA change)
- Risk assessment
- Implementation priority (1-5)

Be specific with dollar amounts and percentages."""

NEGATIVE_KEYWORD_SYSTEM_PROMPT = """You are a Negative Keyword specialist for Google Ads. Your job is to:

1. **Analyze Search Terms**: Review search terms that triggered ads
2. **Identify Waste**: Find irrelevant searches wasting money
3. **Categorize Negatives**: Group by theme (competitors, DIY, wrong location, etc.)
4. **Recommend Match Types**: Choose appropriate negative match types
5. **Estimate Savings**: Calculate expected cost reduction

## Common Negative Categories for Landscaping
- **Competitors**: Other landscape company names
- **DIY**: "how to", "tutorial", "DIY", "plans"
- **Jobs/Careers**: "jobs", "salary", "hiring", "careers"
- **Wrong Location**: Cities outside service area
- **Wrong Intent**: "free", "cheap", "pictures", "images"
- **Irrelevant Services**: Services not offered

## Match Type Guidelines
- EXACT: Block only the exact term
- PHRASE: Block phrases containing the term
- BROAD: Block any related variations

Start with PHRASE match for most negatives; use EXACT for very specific blocks.

Output should include:
- Recommended negatives with match types
- Expected monthly savings
- Risk assessment (potential for blocking good traffic)
- Implementation priority"""

AD_COPY_TESTER_SYSTEM_PROMPT = """You are an Ad Copy Testing specialist for Google Ads. Your job is to:

1. **Analyze Current Ads**: Review existing ad performance (CTR, conversion rate)
2. **Generate Variations**: Create compelling A/B test variations
3. **Ensure Compliance**: All ads must follow Google's strict policies
4. **Target Emotions**: Appeal to homeowner desires (pride, convenience, value)
5. **Include CTAs**: Clear calls-to-action in every ad

## Character Limits (STRICT)
- Headlines: MAX 30 characters each (3-15 per ad)
- Descriptions: MAX 90 characters each (2-4 per ad)
- Display Paths: MAX 15 characters each

## Policy Rules
- NO phone numbers in ad text
- NO excessive punctuation (!!!, $$$)
- NO misleading claims
- NO all caps (except abbreviations)

## Test Hypotheses to Try
1. Price-focused vs Quality-focused
2. Urgency ("Limited Spots") vs Trust ("20+ Years")
3. Benefit-focused vs Feature-focused
4. Question headlines vs Statement headlines

Output variations in JSON format matching the ad spec requirements."""


def _read_tools(context: 'AgentContext') -> List[ToolSpec]:
    return google_ads_read_tools(context)


def _read_and_mutation_tools(context: 'AgentContext') -> List[ToolSpec]:
    return google_ads_read_tools(context) + google_ads_mutation_tools(context)


HEALTH_CHECK = SubAgentProfile('health_check', HEALTH_CHECK_SYSTEM_PROMPT, _read_tools)
COMPETITOR_INTEL = SubAgentProfile('competitor_intel', COMPETITOR_INTEL_SYSTEM_PROMPT, dataforseo_tools)
BUDGET_OPTIMIZER = SubAgentProfile('budget_optimizer', BUDGET_OPTIMIZER_SYSTEM_PROMPT, _read_tools)
NEGATIVE_KEYWORDS = SubAgentProfile('negative_keywords', NEGATIVE_KEYWORD_SYSTEM_PROMPT, _read_tools)
AD_COPY_TESTER = SubAgentProfile('ad_copy_tester', AD_COPY_TESTER_SYSTEM_PROMPT, _read_tools)

# Appended to a specialist prompt when it may stage changes
DRY_RUN_INSTRUCTIONS = (
    '\n\nYou may call the mutation tools to validate your recommendations. '
    'Always pass dry_run: true; changes are applied only after human review.'
)


async def run_specialist(
    context: 'AgentContext',
    profile: SubAgentProfile,
    message: str,
    *,
    allow_mutations: bool = False,
    max_iterations: Optional[int] = None,
) -> Dict[str, Any]:
    """Run one specialist to completion and return its summary and tool log."""
    specs = _read_and_mutation_tools(context) if allow_mutations else profile.tool_factory(context)
    system_prompt = profile.system_prompt + (DRY_RUN_INSTRUCTIONS if allow_mutations else '')
    settings = context.config.agent
    loop = AgentLoop(
        context.llm,
        ToolRegistry(specs),
        model=settings.model,
        max_tokens=settings.max_tokens,
        system_prompt=system_prompt,
        max_iterations=settings.max_iterations if max_iterations is None else max_iterations,
        name=profile.name,
    )
    response = await loop.run(message)
    return {
        'agent': profile.name,
        'summary': response.text or f'{profile.name} completed',
        'tools_used': [record.tool for record in response.tool_calls],
        'iterations': response.iterations,
        'usage': response.usage.to_dict(),
    }


# -------------------------------------------------------------------
# Specialists
# -------------------------------------------------------------------


async def run_health_check(context: 'AgentContext', args: Dict[str, Any]) -> Dict[str, Any]:
    customer_id = args.get('customer_id')
    suffix = f' (Customer ID: {customer_id})' if customer_id else ''
    return await run_specialist(context, HEALTH_CHECK, (
        f'Run a comprehensive health check on this Google Ads account{suffix}.\n\n'
        'Steps to follow:\n'
        '1. First, get campaign performance for the last 30 days\n'
        '2. Get keyword performance data\n'
        "3. Get search terms report to see what's triggering ads\n"
        '4. Analyze the data and identify issues\n'
        '5. Calculate wasted spend on non-converting keywords\n'
        '6. Provide prioritized recommendations\n\n'
        'Start by getting the campaign performance data.'
    ))


async def run_competitor_intel(context: 'AgentContext', args: Dict[str, Any]) -> Dict[str, Any]:
    target_domain = args.get('target_domain')
    if not target_domain:
        raise ValueError('target_domain is required')
    seed_keywords = args.get('seed_keywords') or []
    if isinstance(seed_keywords, str):
        seed_keywords = [seed_keywords]
    if not seed_keywords:
        raise ValueError('seed_keywords is required')
    location = args.get('location') or 'United States'
    return await run_specialist(context, COMPETITOR_INTEL, (
        f'Analyze competitive landscape for: {target_domain}\n\n'
        f'Target location: {location}\n'
        f"Seed keywords: {', '.join(seed_keywords)}\n\n"
        'Steps:\n'
        '1. Get competitors bidding on these keywords\n'
        "2. Analyze top 3 competitors' keyword strategies\n"
        "3. Find gap keywords (they have, we don't)\n"
        '4. Identify attack opportunities (weak positions we can win)\n'
        '5. Provide strategic recommendations\n\n'
        'Start by finding SERP competitors for the seed keywords.'
    ))


async def optimize_budgets(context: 'AgentContext', args: Dict[str, Any]) -> Dict[str, Any]:
    business = context.config.business
    return await run_specialist(context, BUDGET_OPTIMIZER, (
        'Optimize budget allocation across our Google Ads campaigns.\n\n'
        'Steps:\n'
        '1. Get campaign performance data for last 30 days\n'
        '2. Identify top performing campaigns (low CPA, good conversion rate)\n'
        '3. Identify underperforming campaigns (high CPA or no conversions)\n'
        '4. Calculate optimal budget reallocation\n'
        '5. Provide specific recommendations with expected impact\n\n'
        f'We are {business.name}, serving {business.region}. '
        'Peak season is March-October; target CPA is $50-100.'
    ), allow_mutations=bool(args.get('apply_recommendations')))


async def analyze_negative_keywords(context: 'AgentContext', args: Dict[str, Any]) -> Dict[str, Any]:
    business = context.config.business
    campaign_id = args.get('campaign_id')
    focus = f'Focus on campaign ID {campaign_id}.\n\n' if campaign_id else ''
    return await run_specialist(context, NEGATIVE_KEYWORDS, (
        'Analyze search terms and recommend negative keywords.\n\n'
        f'{focus}'
        'Steps:\n'
        '1. Get search terms report for last 30 days\n'
        '2. Identify irrelevant searches that wasted money\n'
        '3. Group negatives by category\n'
        '4. Recommend match types\n'
        '5. Calculate expected monthly savings\n\n'
        f"Service areas: {', '.join(business.service_areas)} ({business.region})."
    ), allow_mutations=bool(args.get('apply_recommendations')) and bool(campaign_id))


# -------------------------------------------------------------------
# Ad copy
# -------------------------------------------------------------------


def _clip(values: Any, limit: int) -> List[str]:
    if not isinstance(values, list):
        return []
    return [str(value)[:limit] for value in values]


async def generate_ad_variations(
    context: 'AgentContext',
    service: str,
    location: str,
    count: int = 3,
) -> List[Dict[str, Any]]:
    """Ask the model for `count` ad variations; no Google Ads calls are made."""
    logger.info('Generating %d ad variations for "%s" in %s', count, service, location)
    response = await context.llm.messages.create(
        model=context.config.agent.model,
        max_tokens=4096,
        system=AD_COPY_TESTER_SYSTEM_PROMPT,
        messages=[{
            'role': 'user',
            'content': (
                f'Generate {count} unique ad variations for:\n\n'
                f'Service: {service}\n'
                f'Location: {location}\n'
                f'Business: {context.config.business.name}\n\n'
                'Each variation should test a different hypothesis:\n'
                '1. Price/Value focused\n'
                '2. Quality/Trust focused\n'
                '3. Urgency/Seasonal focused\n\n'
                'Return ONLY a valid JSON array of variations:\n'
                '[{"headlines": [5-8 strings, max 30 chars], '
                '"descriptions": [2-3 strings, max 90 chars], '
                '"path1": "max 15 chars", "path2": "max 15 chars", '
                '"hypothesis": "What this tests", "expectedImpact": "Expected improvement"}]'
            ),
        }],
    )
    variations = extract_json(first_text(response), opening='[')
    if not isinstance(variations, list):
        raise CampaignDesignError('Could not extract variations from response')

    sanitized = []
    for variation in variations:
        if not isinstance(variation, dict):
            continue
        sanitized.append({
            'headlines': _clip(variation.get('headlines'), 30),
            'descriptions': _clip(variation.get('descriptions'), 90),
            'path1': str(variation.get('path1') or '')[:15],
            'path2': str(variation.get('path2') or '')[:15],
            'hypothesis': variation.get('hypothesis', ''),
            'expected_impact': variation.get('expectedImpact', variation.get('expected_impact', '')),
        })
    return sanitized


async def run_ad_copy_tester(context: 'AgentContext', args: Dict[str, Any]) -> Dict[str, Any]:
    location = args.get('location') or 'Dublin Ohio'
    service = args.get('service')
    if args.get('generate_only') and service:
        return {
            'variations': await generate_ad_variations(context, service, location, 3),
            'message': 'Generated ad variations. Review and use create_ad_variation to implement.',
        }

    business = context.config.business
    ad_group_id = args.get('ad_group_id')
    focus = f'Focus on ad group ID: {ad_group_id}' if ad_group_id else 'Analyze all ad groups'
    return await run_specialist(context, AD_COPY_TESTER, (
        'Analyze our current ad copy and generate A/B test variations.\n\n'
        f'{focus}\n\n'
        'Steps:\n'
        '1. Get current ad performance data\n'
        '2. Identify top and bottom performing ads\n'
        '3. Analyze what makes top performers work\n'
        '4. Generate 3-5 test variations for underperforming ads\n'
        '5. Provide testing recommendations\n\n'
        f'Business Context:\n{business.describe()}'
    ))


# -------------------------------------------------------------------
# Tool definitions
# -------------------------------------------------------------------


def sub_agent_tools(context: 'AgentContext') -> List[ToolSpec]:
    return [
        ToolSpec(
            ToolName.RUN_HEALTH_CHECK,
            'Run a comprehensive health check on the Google Ads account. Returns analysis '
            'of wasted spend, efficiency issues, and recommendations.',
            {
                'type': 'object',
                'properties': {
                    'customer_id': {
                        'type': 'string',
                        'description': 'Optional specific customer ID to check',
                    },
                },
            },
            functools.partial(run_health_check, context),
        ),
        ToolSpec(
            ToolName.RUN_COMPETITOR_INTEL,
            'Analyze competitor PPC strategies, find gap keywords, and identify attack opportunities.',
            {
                'type': 'object',
                'properties': {
                    'target_domain': {
                        'type': 'string',
                        'description': 'Your domain (e.g., stiltnerlandscapes.com)',
                    },
                    'seed_keywords': {
                        'type': 'array',
                        'items': {'type': 'string'},
                        'description': 'Seed keywords to analyze',
                    },
                    'location': {'type': 'string', 'default': 'United States'},
                },
                'required': ['target_domain', 'seed_keywords'],
            },
            functools.partial(run_competitor_intel, context),
        ),
        ToolSpec(
            ToolName.OPTIMIZE_BUDGETS,
            'Analyze campaign performance and recommend budget reallocations to maximize ROI',
            {
                'type': 'object',
                'properties': {
                    'apply_recommendations': {
                        'type': 'boolean',
                        'description': 'If true, validate the recommended budget changes with a dry run',
                        'default': False,
                    },
                },
            },
            functools.partial(optimize_budgets, context),
        ),
        ToolSpec(
            ToolName.ANALYZE_NEGATIVE_KEYWORDS,
            'Analyze search terms and recommend negative keywords to reduce wasted spend',
            {
                'type': 'object',
                'properties': {
                    'apply_recommendations': {
                        'type': 'boolean',
                        'description': 'If true, validate the recommended negatives with a dry run',
                        'default': False,
                    },
                    'campaign_id': {
                        'type': 'string',
                        'description': 'Specific campaign to analyze (optional)',
                    },
                },
            },
            functools.partial(analyze_negative_keywords, context),
        ),
        ToolSpec(
            ToolName.TEST_AD_COPY,
            'Analyze current ad performance and generate A/B test variations',
            {
                'type': 'object',
                'properties': {
                    'ad_group_id': {
                        'type': 'string',
                        'description': 'Specific ad group to analyze (optional)',
                    },
                    'generate_only': {
                        'type': 'boolean',
                        'description': 'If true, only generate variations without analyzing existing ads',
                        'default': False,
                    },
                    'service': {
                        'type': 'string',
                        'description': 'Service to generate ads for (if generate_only)',
                    },
                    'location': {
                        'type': 'string',
                        'description': 'Location to target (if generate_only)',
                        'default': 'Dublin Ohio',
                    },
                },
            },
            functools.partial(run_ad_copy_tester, context),
        ),
    ]
