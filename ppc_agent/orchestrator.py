"""
PPC Intelligence Orchestrator

The top-level agent. It can call every direct tool (Google Ads, DataForSEO,
Slack) and every specialist agent, and decides which to use for a request.

Usage:
    async with AgentContext() as ctx:
        agent = PPCAgent(ctx)
        response = await agent.run('Find wasted spend in the last 30 days')
        print(response.text)
"""

import logging
from typing import Optional

from .agent_loop import AgentLoop, AgentResponse
from .campaign_builder import campaign_builder_tools
from .context import AgentContext
from .sub_agents import sub_agent_tools
from .tool_registry import ToolRegistry
from .tools.dataforseo import dataforseo_tools
from .tools.google_ads import google_ads_mutation_tools, google_ads_read_tools
from .tools.notifications import notification_tools

logger = logging.getLogger(__name__)

ORCHESTRATOR_SYSTEM_PROMPT = """You are an elite PPC Intelligence Agent for managing Google Ads campaigns. You have access to:

## Sub-Agents (High-Level Tasks)
- **Health Check Agent**: Run comprehensive account health analysis
- **Competitor Intel Agent**: Analyze competitor PPC strategies
- **Campaign Builder Agent**: Create new campaigns from descriptions
- **Budget Optimizer Agent**: Recommend budget reallocations
- **Ad Copy Tester Agent**: Generate A/B test ad variations
- **Negative Keyword Agent**: Find and add negative keywords

## Direct Tools (Granular Tasks)
- Google Ads API tools for querying campaign/keyword data
- Google Ads mutation tools (dry run unless explicitly told otherwise)
- DataForSEO tools for market research and competitor analysis
- Notification tools for sending alerts

## Your Capabilities
1. **Audit**: Run full account audits identifying waste and opportunities
2. **Research**: Research keywords, competitors, and market trends
3. **Optimize**: Recommend bid adjustments, negative keywords, new keywords
4. **Create**: Build new campaigns from natural language descriptions
5. **Report**: Generate executive summaries and detailed reports
6. **Alert**: Send notifications about important findings

## Guidelines
- Always start with data gathering before making recommendations
- Prioritize recommendations by ROI impact
- Consider seasonal trends for landscaping businesses
- Focus on local/geo-targeted opportunities
- Be specific with numbers and dollar amounts
- Use sub-agents for complex multi-step tasks
- Use direct tools for specific data queries

## Output Format
Structure your responses with:
- **Summary**: 2-3 sentence overview
- **Key Findings**: Bullet points of important discoveries
- **Recommendations**: Prioritized action items with expected impact
- **Next Steps**: What to do immediately

## The Business
{business}"""


def build_registry(context: AgentContext) -> ToolRegistry:
    """Every tool the orchestrator may call."""
    registry = ToolRegistry()
    registry.register_all(sub_agent_tools(context))
    registry.register_all(campaign_builder_tools(context))
    registry.register_all(google_ads_read_tools(context))
    registry.register_all(google_ads_mutation_tools(context))
    registry.register_all(dataforseo_tools(context))
    registry.register_all(notification_tools(context))
    return registry


class PPCAgent:
    """Runs free-form requests through the orchestrator loop."""

    def __init__(self, context: AgentContext, registry: Optional[ToolRegistry] = None):
        self.context = context
        self.registry = registry or build_registry(context)
        settings = context.config.agent
        self.loop = AgentLoop(
            context.llm,
            self.registry,
            model=settings.model,
            max_tokens=settings.max_tokens,
            system_prompt=ORCHESTRATOR_SYSTEM_PROMPT.format(
                business=context.config.business.describe()
            ),
            max_iterations=settings.max_iterations,
            name='orchestrator',
        )

    async def run(self, message: str, max_iterations: Optional[int] = None) -> AgentResponse:
        return await self.loop.run(message, max_iterations=max_iterations)

    async def close(self) -> None:
        await self.context.close()
