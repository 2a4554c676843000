"""
Tests for the orchestrator and the canned workflows.
"""

import pytest
import pytest_asyncio

from ppc_agent.orchestrator import PPCAgent, build_registry
from ppc_agent.tool_registry import ToolName
from ppc_agent.workflows import Workflows

from fakes import message, text_block, tool_use_block


@pytest_asyncio.fixture
async def agent(context):
    return PPCAgent(context)


class TestOrchestrator:

    @pytest.mark.asyncio
    async def test_registry_holds_every_tool(self, context):
        registry = build_registry(context)
        assert set(registry.names) == set(ToolName)
        assert registry.names[:6] == [
            ToolName.RUN_HEALTH_CHECK,
            ToolName.RUN_COMPETITOR_INTEL,
            ToolName.OPTIMIZE_BUDGETS,
            ToolName.ANALYZE_NEGATIVE_KEYWORDS,
            ToolName.TEST_AD_COPY,
            ToolName.CREATE_CAMPAIGN,
        ]

    @pytest.mark.asyncio
    async def test_system_prompt_describes_business(self, agent, llm):
        llm.script(message([text_block('Hello.')]))

        response = await agent.run('hi')

        assert response.text == 'Hello.'
        system = llm.messages.calls[0]['system']
        assert 'Business: Stiltner Landscapes' in system
        assert '{business}' not in system
        assert len(llm.messages.calls[0]['tools']) == len(ToolName)

    @pytest.mark.asyncio
    async def test_specialist_runs_as_one_tool_call(self, agent, llm):
        llm.script(
            message([tool_use_block('t1', 'run_health_check')], stop_reason='tool_use'),
            message([text_block('Health check summary')]),
            message([text_block('Your account is healthy.')]),
        )

        response = await agent.run('Audit my account')

        assert response.text == 'Your account is healthy.'
        assert [r.tool for r in response.tool_calls] == ['run_health_check']
        assert response.tool_calls[0].output['summary'] == 'Health check summary'
        assert llm.messages.calls[1]['system'].startswith('You are a Google Ads Health Check specialist')

    @pytest.mark.asyncio
    async def test_close_closes_context(self, agent, fake_bridge):
        await agent.context.get_bridge()
        await agent.close()
        assert fake_bridge.stopped == 1


# ============================================================================
# Workflows
# ============================================================================


class TestWorkflows:

    @pytest.mark.asyncio
    async def test_full_audit_prompt(self, agent, llm):
        llm.script(message([text_block('Audit done')]))

        response = await Workflows(agent).full_audit(customer_id='123')

        prompt = llm.messages.calls[0]['messages'][0]['content']
        assert response.text == 'Audit done'
        assert prompt.startswith('Run a complete audit')
        assert 'Customer ID: 123' in prompt
        assert 'Target areas: Dublin, Powell, Galena, New Albany.' in prompt

    @pytest.mark.asyncio
    @pytest.mark.parametrize('dry_run,expected', [
        (True, 'dry_run set to true'),
        (False, 'dry_run set to false'),
    ])
    async def test_create_campaign_prompt(self, agent, llm, dry_run, expected):
        llm.script(message([text_block('ok')]))
        await Workflows(agent).create_campaign('Patio campaign, $40/day', dry_run=dry_run)
        prompt = llm.messages.calls[0]['messages'][0]['content']
        assert expected in prompt
        assert 'Patio campaign, $40/day' in prompt

    @pytest.mark.asyncio
    async def test_research_prompts(self, agent, llm):
        llm.script(*[message([text_block('ok')]) for _ in range(3)])
        workflows = Workflows(agent)

        await workflows.keyword_research(['patios', 'pavers'], 'Columbus,Ohio,United States')
        await workflows.competitor_analysis(['rival.com', 'other.com'])
        await workflows.generate_ad_variations('hardscaping')

        prompts = [call['messages'][0]['content'] for call in llm.messages.calls]
        assert 'Seed keywords: patios, pavers' in prompts[0]
        assert 'Location: Columbus,Ohio,United States' in prompts[0]
        assert 'rival.com, other.com' in prompts[1]
        assert 'Location: Dublin Ohio' in prompts[2]
