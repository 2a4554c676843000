"""
Campaign Builder

Turns a natural-language request into a complete Google Ads search
campaign:

1. design: the model returns a JSON CampaignSpec
2. sanitize: fix the usual length and policy slips in the ad copy
3. validate: refuse anything Google Ads would reject
4. build: budget -> campaign -> locations -> ad groups -> keywords -> ads,
   linked through negative temporary ids
5. mutate: always a dry run first; a live run only when dry_run is False

Campaigns are always created PAUSED.
"""

import functools
import json
import logging
import re
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from .config import BusinessProfile
from .errors import CampaignDesignError, CampaignValidationError
from .tool_registry import ToolName, ToolSpec

if TYPE_CHECKING:
    from .context import AgentContext

logger = logging.getLogger(__name__)

MICROS = 1_000_000
HEADLINE_MAX = 30
DESCRIPTION_MAX = 90
PATH_MAX = 15
PHONE_PATTERN = re.compile(r'\(\d{3}\)\s?\d{3}[-.]?\d{4}|\d{3}[-.]?\d{3}[-.]?\d{4}')
EXCESSIVE_PUNCTUATION = re.compile(r'[!]{2,}|[.]{3,}|[?]{2,}')
STATE_SUFFIX = re.compile(r'[\s,]+(ohio|oh)$', re.IGNORECASE)

# Google Ads enum values
BUDGET_DELIVERY_STANDARD = 2
CAMPAIGN_STATUS_PAUSED = 3
CHANNEL_SEARCH = 2
EU_POLITICAL_ADVERTISING_NONE = 3
CRITERION_LOCATION = 6
AD_GROUP_STATUS_ENABLED = 2
AD_GROUP_TYPE_SEARCH_STANDARD = 2
CRITERION_STATUS_ENABLED = 2
AD_STATUS_ENABLED = 2
MATCH_TYPES = {'EXACT': 2, 'PHRASE': 3, 'BROAD': 4}

# Geo target constants for the Central Ohio service area
OHIO_GEO_TARGETS = {
    'dublin': '1014895',
    'powell': '1015053',
    'galena': '1014921',
    'new albany': '1015007',
    'westerville': '1015149',
    'columbus': '1014868',
    'delaware': '1014893',
    'lewis center': '1014977',
}

NETWORK_SETTINGS = {
    'SEARCH_ONLY': {
        'target_google_search': True,
        'target_search_network': False,
        'target_content_network': False,
    },
    'SEARCH_AND_PARTNERS': {
        'target_google_search': True,
        'target_search_network': True,
        'target_content_network': False,
    },
    'SEARCH_AND_DISPLAY': {
        'target_google_search': True,
        'target_search_network': True,
        'target_content_network': True,
    },
}

EXAMPLE_CAMPAIGNS = {
    'landscape_design': (
        'Create a search campaign for landscape design services targeting '
        'Dublin, Powell, and New Albany Ohio. Focus on high-end residential '
        'landscape design with a $50/day budget. Target homeowners looking '
        'for professional outdoor space transformation.'
    ),
    'lawn_care': (
        'Create a campaign for lawn care and maintenance services in '
        'Columbus and Westerville Ohio. Include keywords for lawn mowing, '
        'fertilization, and weed control. Budget: $30/day. Target both '
        'residential and commercial customers.'
    ),
    'hardscaping': (
        'Build a campaign for hardscaping services - patios, retaining walls, '
        'outdoor kitchens, fire pits. Target affluent neighborhoods in '
        'Dublin and Powell. Higher budget of $75/day since these are '
        'high-ticket services averaging $15,000+ per project.'
    ),
    'spring_promo': (
        'Create a seasonal spring campaign promoting 20% off landscape '
        'design consultations. Target all Central Ohio service areas. '
        'Emphasize "Book Now for Spring Installation" messaging. '
        'Budget: $40/day for 6 weeks.'
    ),
}

CAMPAIGN_BUILDER_SYSTEM_PROMPT = """You are an expert Google Ads campaign builder for a landscaping business.

When given a campaign request, you will:
1. Design the optimal campaign structure
2. Create keyword lists with appropriate match types
3. Write compelling ad copy that follows Google's guidelines
4. Set appropriate bidding strategies

## Keywords
- Include service + location variants (e.g., "landscape design Dublin Ohio")
- Use EXACT match for high-intent terms
- Use PHRASE match for service + modifier combinations
- Use BROAD match sparingly for discovery

## Ad Copy Rules (character limits are enforced by Google)
- Headlines: MAX 30 characters each, need 3-15
- Descriptions: MAX 90 characters each, need 2-4
- Path1 / Path2: MAX 15 characters each (e.g., "design", "dublin")
- Include location in at least one headline
- Include a call-to-action (Free Estimate, Call Now)
- Highlight differentiators (Licensed, Insured)

## Ad Policy Rules
- NEVER put phone numbers in headlines (use "Call Today" instead)
- NEVER use excessive punctuation (no !!! or ... or ???)
- NEVER use ALL CAPS words (except acronyms like LLC)
- NEVER include prices unless they are exact and current
- NEVER make unprovable claims ("Best", "#1")

## Structure
- One theme per ad group (e.g., "Landscape Design", "Lawn Care")
- 10-20 keywords per ad group
- At least 2 responsive search ads per ad group

## Bidding
- New campaigns: start with MAXIMIZE_CLICKS to gather data
- Established: MAXIMIZE_CONVERSIONS or TARGET_CPA
- Typical CPA for landscaping leads: $50-150

## Ohio Service Areas
Available for targeting: Dublin, Powell, Galena, New Albany, Westerville, Columbus, Delaware, Lewis Center

Output your campaign design as valid JSON."""

SPEC_SCHEMA_HINT = """{
  "name": string,
  "dailyBudget": number,
  "biddingStrategy": "MAXIMIZE_CONVERSIONS" | "MAXIMIZE_CLICKS" | "TARGET_CPA" | "MANUAL_CPC",
  "targetCpa": number (optional),
  "networks": "SEARCH_ONLY" | "SEARCH_AND_PARTNERS",
  "locations": [city names from the Ohio list],
  "adGroups": [{
    "name": string,
    "keywords": [{"text": string, "matchType": "EXACT" | "PHRASE" | "BROAD"}],
    "ads": [{
      "headlines": [3-15 strings, each max 30 chars],
      "descriptions": [2-4 strings, each max 90 chars],
      "finalUrl": string,
      "path1": string (optional),
      "path2": string (optional)
    }]
  }]
}"""


# =============================================================================
# Spec models
# =============================================================================


class _SpecModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class KeywordSpec(_SpecModel):
    text: str
    match_type: Literal['EXACT', 'PHRASE', 'BROAD'] = Field('PHRASE', alias='matchType')

    @field_validator('match_type', mode='before')
    @classmethod
    def _upper_match_type(cls, value: Any) -> Any:
        return value.upper() if isinstance(value, str) else value


class AdSpec(_SpecModel):
    headlines: List[str] = Field(default_factory=list)
    descriptions: List[str] = Field(default_factory=list)
    final_url: str = Field('', alias='finalUrl')
    path1: Optional[str] = None
    path2: Optional[str] = None


class AdGroupSpec(_SpecModel):
    name: str
    keywords: List[KeywordSpec] = Field(default_factory=list)
    ads: List[AdSpec] = Field(default_factory=list)


class CampaignSpec(_SpecModel):
    name: str
    daily_budget: float = Field(alias='dailyBudget')
    bidding_strategy: Literal[
        'MAXIMIZE_CONVERSIONS', 'MAXIMIZE_CLICKS', 'TARGET_CPA', 'MANUAL_CPC'
    ] = Field('MAXIMIZE_CLICKS', alias='biddingStrategy')
    target_cpa: Optional[float] = Field(None, alias='targetCpa')
    networks: Literal['SEARCH_ONLY', 'SEARCH_AND_PARTNERS', 'SEARCH_AND_DISPLAY'] = 'SEARCH_ONLY'
    locations: List[str] = Field(default_factory=list)
    ad_groups: List[AdGroupSpec] = Field(default_factory=list, alias='adGroups')

    @property
    def total_keywords(self) -> int:
        return sum(len(group.keywords) for group in self.ad_groups)

    @property
    def total_ads(self) -> int:
        return sum(len(group.ads) for group in self.ad_groups)


# =============================================================================
# Sanitize / validate
# =============================================================================


def _truncate_description(text: str) -> str:
    if len(text) <= DESCRIPTION_MAX:
        return text
    truncated = text[:DESCRIPTION_MAX - 3]
    last_space = truncated.rfind(' ')
    if last_space > 60:
        truncated = truncated[:last_space]
    return truncated + '...'


def _truncate_path(path: Optional[str]) -> Optional[str]:
    if path and len(path) > PATH_MAX:
        return path[:PATH_MAX].rstrip('-')
    return path


def sanitize_spec(spec: CampaignSpec) -> CampaignSpec:
    """Return a copy with over-long copy trimmed and phone numbers removed from headlines."""
    spec = spec.model_copy(deep=True)
    for group in spec.ad_groups:
        for ad in group.ads:
            ad.headlines = [
                PHONE_PATTERN.sub('Call Today', headline)[:HEADLINE_MAX].strip()
                for headline in ad.headlines
            ]
            ad.descriptions = [_truncate_description(d) for d in ad.descriptions]
            ad.path1 = _truncate_path(ad.path1)
            ad.path2 = _truncate_path(ad.path2)
    return spec


def validate_campaign_spec(spec: CampaignSpec) -> None:
    """
    Check the spec against Google Ads limits and ad policy.

    Raises:
        CampaignValidationError: listing every problem found
    """
    errors: List[str] = []
    if spec.daily_budget < 1:
        errors.append('Daily budget must be at least $1')
    if not spec.ad_groups:
        errors.append('Campaign must have at least one ad group')

    for group in spec.ad_groups:
        if not group.keywords:
            errors.append(f'Ad group "{group.name}" must have at least one keyword')
        if not group.ads:
            errors.append(f'Ad group "{group.name}" must have at least one ad')

        for ad in group.ads:
            if not 3 <= len(ad.headlines) <= 15:
                errors.append(f'Ads in "{group.name}" must have 3-15 headlines')
            for headline in ad.headlines:
                if len(headline) > HEADLINE_MAX:
                    errors.append(
                        f'Headline too long ({len(headline)} chars, max {HEADLINE_MAX}): "{headline}"'
                    )
                if PHONE_PATTERN.search(headline):
                    errors.append(f'Phone numbers not allowed in headlines: "{headline}"')
                if EXCESSIVE_PUNCTUATION.search(headline):
                    errors.append(f'Excessive punctuation not allowed in headlines: "{headline}"')

            if not 2 <= len(ad.descriptions) <= 4:
                errors.append(f'Ads in "{group.name}" must have 2-4 descriptions')
            for description in ad.descriptions:
                if len(description) > DESCRIPTION_MAX:
                    errors.append(
                        f'Description too long ({len(description)} chars, '
                        f'max {DESCRIPTION_MAX}): "{description}"'
                    )

            for label, path in (('path1', ad.path1), ('path2', ad.path2)):
                if path and len(path) > PATH_MAX:
                    errors.append(f'{label} too long ({len(path)} chars, max {PATH_MAX}): "{path}"')

    if errors:
        raise CampaignValidationError(errors)


# =============================================================================
# Operations
# =============================================================================


def geo_target_id(location: str) -> Optional[str]:
    """Resolve "Dublin", "Dublin, Ohio" or "dublin oh" to a geo target constant."""
    city = STATE_SUFFIX.sub('', location.strip()).split(',')[0].strip().lower()
    return OHIO_GEO_TARGETS.get(city)


def _bidding(spec: CampaignSpec) -> Dict[str, Any]:
    strategy = spec.bidding_strategy
    if strategy == 'MAXIMIZE_CONVERSIONS':
        if spec.target_cpa:
            return {'maximize_conversions': {'target_cpa_micros': round(spec.target_cpa * MICROS)}}
        return {'maximize_conversions': {'cpc_bid_ceiling_micros': 0}}
    if strategy == 'MAXIMIZE_CLICKS':
        # Maximize Clicks is the target_spend field in the API
        return {'target_spend': {}}
    if strategy == 'TARGET_CPA':
        return {'target_cpa': {'target_cpa_micros': round((spec.target_cpa or 50) * MICROS)}}
    return {'manual_cpc': {'enhanced_cpc_enabled': False}}


def build_campaign_operations(customer_id: str, spec: CampaignSpec) -> List[Dict[str, Any]]:
    """Build every create operation for the campaign, in dependency order."""
    operations: List[Dict[str, Any]] = []
    next_id = -1

    def temp_id() -> str:
        nonlocal next_id
        value = str(next_id)
        next_id -= 1
        return value

    def add(entity: str, resource: Dict[str, Any]) -> None:
        operations.append({'entity': entity, 'operation': 'create', 'resource': resource})

    prefix = f'customers/{customer_id}'

    budget_id = temp_id()
    budget_resource = f'{prefix}/campaignBudgets/{budget_id}'
    add('campaign_budget', {
        'resource_name': budget_resource,
        'name': f'{spec.name} Budget',
        'amount_micros': round(spec.daily_budget * MICROS),
        'delivery_method': BUDGET_DELIVERY_STANDARD,
    })

    campaign_id = temp_id()
    campaign_resource = f'{prefix}/campaigns/{campaign_id}'
    add('campaign', {
        'resource_name': campaign_resource,
        'name': spec.name,
        'status': CAMPAIGN_STATUS_PAUSED,
        'advertising_channel_type': CHANNEL_SEARCH,
        'campaign_budget': budget_resource,
        'network_settings': dict(NETWORK_SETTINGS[spec.networks]),
        'contains_eu_political_advertising': EU_POLITICAL_ADVERTISING_NONE,
        **_bidding(spec),
    })

    for location in spec.locations:
        geo_id = geo_target_id(location)
        if geo_id is None:
            logger.warning('Unknown location "%s"; skipping location targeting', location)
            continue
        add('campaign_criterion', {
            'campaign': campaign_resource,
            'type': CRITERION_LOCATION,
            'location': {'geo_target_constant': f'geoTargetConstants/{geo_id}'},
            'negative': False,
        })

    for group in spec.ad_groups:
        ad_group_id = temp_id()
        ad_group_resource = f'{prefix}/adGroups/{ad_group_id}'
        add('ad_group', {
            'resource_name': ad_group_resource,
            'name': group.name,
            'campaign': campaign_resource,
            'status': AD_GROUP_STATUS_ENABLED,
            'type': AD_GROUP_TYPE_SEARCH_STANDARD,
        })

        for keyword in group.keywords:
            add('ad_group_criterion', {
                'resource_name': f'{prefix}/adGroupCriteria/{ad_group_id}~{temp_id()}',
                'ad_group': ad_group_resource,
                'status': CRITERION_STATUS_ENABLED,
                'keyword': {'text': keyword.text, 'match_type': MATCH_TYPES[keyword.match_type]},
            })

        for ad in group.ads:
            rsa: Dict[str, Any] = {
                'headlines': [{'text': text} for text in ad.headlines],
                'descriptions': [{'text': text} for text in ad.descriptions],
            }
            if ad.path1:
                rsa['path1'] = ad.path1
            if ad.path2:
                rsa['path2'] = ad.path2
            add('ad_group_ad', {
                'resource_name': f'{prefix}/adGroupAds/{ad_group_id}~{temp_id()}',
                'ad_group': ad_group_resource,
                'status': AD_STATUS_ENABLED,
                'ad': {'responsive_search_ad': rsa, 'final_urls': [ad.final_url]},
            })

    return operations


# =============================================================================
# Design / create
# =============================================================================


def extract_json(text: str, opening: str = '{') -> Any:
    """Pull the first JSON object (or array) out of a model reply."""
    closing = '}' if opening == '{' else ']'
    fenced = re.search(r'```(?:json)?\s*([\s\S]*?)```', text)
    candidate = fenced.group(1) if fenced else None
    if candidate is None:
        start, end = text.find(opening), text.rfind(closing)
        if start == -1 or end <= start:
            raise CampaignDesignError('Could not find JSON in model response')
        candidate = text[start:end + 1]
    try:
        return json.loads(candidate)
    except ValueError as e:
        raise CampaignDesignError(f'Model returned invalid JSON: {e}') from e


def first_text(response: Any) -> str:
    for block in getattr(response, 'content', None) or []:
        if getattr(block, 'type', None) == 'text':
            return block.text
    raise CampaignDesignError('No response from campaign designer')


async def design_campaign(
    context: 'AgentContext',
    description: str,
    business: Optional[BusinessProfile] = None,
) -> CampaignSpec:
    """Ask the model for a CampaignSpec, then sanitize and validate it."""
    business = business or context.config.business
    logger.info('Designing campaign for %s', business.name)

    response = await context.llm.messages.create(
        model=context.config.agent.model,
        max_tokens=4096,
        system=CAMPAIGN_BUILDER_SYSTEM_PROMPT,
        messages=[{
            'role': 'user',
            'content': (
                f'Design a Google Ads search campaign for:\n\n'
                f'{business.describe()}\n\n'
                f'Campaign Request:\n{description}\n\n'
                f'Return ONLY valid JSON with this shape:\n{SPEC_SCHEMA_HINT}'
            ),
        }],
    )
    data = extract_json(first_text(response))
    try:
        spec = CampaignSpec.model_validate(data)
    except ValidationError as e:
        raise CampaignDesignError(f'Campaign spec has the wrong shape: {e}') from e

    for group in spec.ad_groups:
        for ad in group.ads:
            if not ad.final_url:
                ad.final_url = business.website

    spec = sanitize_spec(spec)
    validate_campaign_spec(spec)
    return spec


@dataclass
class CampaignBuildResult:
    spec: CampaignSpec
    operations: List[Dict[str, Any]]
    dry_run_result: Any = None
    live_result: Any = None
    created: bool = False
    summary: str = ''
    warnings: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'spec': self.spec.model_dump(),
            'operations': len(self.operations),
            'dry_run_result': self.dry_run_result,
            'live_result': self.live_result,
            'created': self.created,
            'summary': self.summary,
            'warnings': self.warnings,
        }


def _mutation_ok(result: Any) -> bool:
    if isinstance(result, dict):
        return result.get('success', True) is not False
    return True


def _mutation_error(result: Any) -> str:
    if isinstance(result, dict):
        return str(result.get('error') or 'Unknown error')
    return 'Unknown error'


async def create_campaign(
    context: 'AgentContext',
    description: str,
    business: Optional[BusinessProfile] = None,
    customer_id: Optional[str] = None,
    dry_run: bool = True,
) -> CampaignBuildResult:
    """Design, validate with a dry run, and (only if dry_run is False) create."""
    customer_id = (customer_id or context.default_customer_id or '').replace('-', '')
    if not customer_id:
        raise ValueError('customer_id is required (or set GOOGLE_ADS_DEFAULT_CUSTOMER_ID)')

    spec = await design_campaign(context, description, business)
    operations = build_campaign_operations(customer_id, spec)
    logger.info(
        'Campaign "%s": %d ad group(s), %d keyword(s), %d ad(s), %d operation(s)',
        spec.name, len(spec.ad_groups), spec.total_keywords, spec.total_ads, len(operations),
    )

    bridge = await context.get_bridge()
    dry_run_result = await bridge.mutate(
        operations, customer_id=customer_id, dry_run=True, partial_failure=True,
    )
    result = CampaignBuildResult(spec=spec, operations=operations, dry_run_result=dry_run_result)
    result.warnings = [
        f'Unknown location "{location}" was not targeted'
        for location in spec.locations if geo_target_id(location) is None
    ]
    if not _mutation_ok(dry_run_result):
        result.summary = f'Campaign validation failed: {_mutation_error(dry_run_result)}'
        logger.warning(result.summary)
        return result

    if dry_run:
        result.summary = (
            f'Campaign "{spec.name}" validated successfully. Ready to create with '
            f'{len(spec.ad_groups)} ad groups, {spec.total_keywords} keywords, and '
            f'{spec.total_ads} ads. Set dry_run to false to create.'
        )
    else:
        result.live_result = await bridge.mutate(
            operations, customer_id=customer_id, dry_run=False, partial_failure=False,
        )
        result.created = _mutation_ok(result.live_result)
        if result.created:
            result.summary = (
                f'Campaign "{spec.name}" created successfully. It is PAUSED; '
                'enable it when ready to start spending.'
            )
        else:
            result.summary = f'Campaign creation failed: {_mutation_error(result.live_result)}'

    if context.notifier.configured:
        await context.notifier.send_campaign_created_alert(
            spec.name, spec.daily_budget, len(spec.ad_groups), spec.total_keywords,
            created=result.created,
        )
    return result


# =============================================================================
# Tool
# =============================================================================


async def create_campaign_tool(context: 'AgentContext', args: Dict[str, Any]) -> Dict[str, Any]:
    description = args.get('description')
    if not description:
        raise ValueError('description is required')
    defaults = context.config.business
    business = defaults.model_copy(update={
        key: value
        for key, value in (
            ('name', args.get('business_name')),
            ('website', args.get('website')),
            ('services', args.get('services')),
        )
        if value
    })
    result = await create_campaign(
        context,
        description,
        business,
        customer_id=args.get('customer_id'),
        dry_run=args.get('dry_run', True) is not False,
    )
    return result.to_dict()


def campaign_builder_tools(context: 'AgentContext') -> List[ToolSpec]:
    return [
        ToolSpec(
            ToolName.CREATE_CAMPAIGN,
            'Create a complete Google Ads search campaign from a natural language '
            'description. Designs ad groups, keywords and ads, validates them with a '
            'dry run, and only creates the campaign (PAUSED) when dry_run is false.',
            {
                'type': 'object',
                'properties': {
                    'description': {
                        'type': 'string',
                        'description': 'Natural language description of the campaign',
                    },
                    'business_name': {'type': 'string', 'description': 'Business name'},
                    'website': {'type': 'string', 'description': 'Business website URL'},
                    'services': {
                        'type': 'array',
                        'items': {'type': 'string'},
                        'description': 'List of services offered',
                    },
                    'customer_id': {'type': 'string'},
                    'dry_run': {
                        'type': 'boolean',
                        'description': 'If true (default), validates but does not create.',
                        'default': True,
                    },
                },
                'required': ['description'],
            },
            functools.partial(create_campaign_tool, context),
        ),
    ]
