"""
Canned requests for the common jobs, each a single orchestrator run.

Usage:
    workflows = Workflows(PPCAgent(ctx))
    response = await workflows.full_audit()
"""

import logging
from typing import List, Optional

from .agent_loop import AgentResponse
from .orchestrator import PPCAgent

logger = logging.getLogger(__name__)


def _customer_line(customer_id: Optional[str]) -> str:
    return f'Customer ID: {customer_id}' if customer_id else ''


class Workflows:
    def __init__(self, agent: PPCAgent):
        self.agent = agent

    @property
    def business(self):
        return self.agent.context.config.business

    async def _run(self, name: str, prompt: str) -> AgentResponse:
        logger.info('Running workflow: %s', name)
        return await self.agent.run(prompt.strip())

    async def full_audit(self, customer_id: Optional[str] = None) -> AgentResponse:
        business = self.business
        return await self._run('full_audit', f"""
Run a complete audit of the Google Ads account:

1. Start with a health check to identify issues
2. Analyze competitor landscape for {', '.join(business.services[:3])} keywords in {business.region}
3. Identify wasted spend and recommend negative keywords
4. Find new keyword opportunities
5. Provide a prioritized action plan with expected ROI

{_customer_line(customer_id)}

Focus on these services: {', '.join(business.services)}.
Target areas: {', '.join(business.service_areas)}.
""")

    async def quick_health_check(self, customer_id: Optional[str] = None) -> AgentResponse:
        return await self._run('quick_health_check', f"""
Run a quick health check on the Google Ads account.
Focus on:
- Top 5 wasted spend keywords
- Top 5 performing keywords
- Overall CTR, CPC, CPA metrics vs benchmarks
- Immediate recommendations

{_customer_line(customer_id)}
""")

    async def competitor_analysis(self, competitors: List[str]) -> AgentResponse:
        return await self._run('competitor_analysis', f"""
Analyze these competitors for {self.business.name} in {self.business.region}:
{', '.join(competitors)}

Find:
1. What keywords they're bidding on
2. Their estimated spend
3. Gap keywords we should target
4. Their ad copy themes
5. Opportunities to outcompete them
""")

    async def keyword_research(self, seed_keywords: List[str], location: str) -> AgentResponse:
        return await self._run('keyword_research', f"""
Research keywords for {self.business.name}:

Seed keywords: {', '.join(seed_keywords)}
Location: {location}

Find:
1. Related keywords with search volume and CPC
2. Long-tail variations
3. Local intent keywords (city + service)
4. Seasonal opportunities
5. Recommended bid ranges

Prioritize by potential ROI.
""")

    async def create_campaign(self, description: str, dry_run: bool = True) -> AgentResponse:
        if dry_run:
            mode = 'validate (dry run)'
            note = 'This is a dry run - the campaign will NOT be created yet.'
        else:
            mode = 'CREATE'
            note = 'This will CREATE the campaign in PAUSED state.'
        return await self._run('create_campaign', f"""
Create a new Google Ads search campaign:

{description}

{self.business.describe()}

Use the create_campaign tool with dry_run set to {'true' if dry_run else 'false'} to build and {mode} the campaign.
{note}
""")

    async def optimize_budgets(self) -> AgentResponse:
        return await self._run('optimize_budgets', """
Analyze our campaign budgets and recommend optimizations:

1. Review performance of all campaigns
2. Identify campaigns with good CPA that could benefit from more budget
3. Find campaigns with poor performance that should have budget reduced
4. Calculate specific budget reallocation recommendations
5. Estimate the impact of the changes

Consider seasonality (peak: March-October).
""")

    async def analyze_negative_keywords(self) -> AgentResponse:
        return await self._run('analyze_negative_keywords', f"""
Analyze search terms and recommend negative keywords:

1. Get the search terms report
2. Identify irrelevant searches wasting money
3. Group negatives by category (DIY, jobs, wrong location, etc.)
4. Recommend match types for each negative
5. Calculate expected monthly savings

Service areas: {', '.join(self.business.service_areas)} ({self.business.region}).
""")

    async def generate_ad_variations(self, service: str, location: str = 'Dublin Ohio') -> AgentResponse:
        return await self._run('generate_ad_variations', f"""
Generate A/B test ad variations for:

Service: {service}
Location: {location}
Business: {self.business.name}

Create 3-5 compelling ad variations that:
1. Test different emotional appeals
2. Test different CTAs
3. Follow all Google Ads policies
4. Highlight local presence and expertise

Each variation should have a hypothesis for what it tests.
""")
