"""
Tests for the tool-invocation loop, driven by a scripted model.
"""

import asyncio

import pytest

from ppc_agent.agent_loop import AgentLoop, TRUNCATION_MARKER
from ppc_agent.errors import AgentLoopExhaustedError
from ppc_agent.tool_registry import ToolName, ToolRegistry, ToolSpec

from fakes import FakeLLM, message, text_block, tool_use_block

SCHEMA = {'type': 'object', 'properties': {}}


def make_loop(llm, specs, **kwargs):
    kwargs.setdefault('system_prompt', 'You are a PPC analyst.')
    return AgentLoop(llm, ToolRegistry(specs), model='test-model', **kwargs)


async def accounts_handler(args):
    return [{'id': '123', 'name': 'Main'}]


async def failing_handler(args):
    raise ValueError('customer_id is required')


async def text_handler(args):
    return 'plain text result'


ACCOUNTS = ToolSpec(ToolName.LIST_ACCOUNTS, 'List accounts', SCHEMA, accounts_handler)
FAILING = ToolSpec(ToolName.QUERY, 'Query', SCHEMA, failing_handler)
TEXT = ToolSpec(ToolName.SEND_SLACK_ALERT, 'Alert', SCHEMA, text_handler)


# ============================================================================
# Completion
# ============================================================================


class TestCompletion:

    @pytest.mark.asyncio
    async def test_no_tool_use_completes_after_one_request(self):
        llm = FakeLLM([message([text_block('All good.')])])
        loop = make_loop(llm, [ACCOUNTS])

        response = await loop.run('How are my campaigns?')

        assert response.text == 'All good.'
        assert response.tool_calls == []
        assert response.iterations == 1
        assert response.stop_reason == 'end_turn'
        assert response.usage.input_tokens == 10
        assert response.usage.output_tokens == 5
        assert len(llm.messages.calls) == 1

    @pytest.mark.asyncio
    async def test_request_shape(self):
        llm = FakeLLM([message([text_block('ok')])])
        loop = make_loop(llm, [ACCOUNTS], max_tokens=1234)

        await loop.run('hello')

        request = llm.messages.calls[0]
        assert request['model'] == 'test-model'
        assert request['max_tokens'] == 1234
        assert request['system'] == 'You are a PPC analyst.'
        assert request['tools'] == [ACCOUNTS.definition()]
        assert request['messages'] == [{'role': 'user', 'content': 'hello'}]

    @pytest.mark.asyncio
    async def test_empty_registry_and_prompt_omitted(self):
        llm = FakeLLM([message([text_block('ok')])])
        loop = make_loop(llm, [], system_prompt='')

        await loop.run('hello')

        assert 'tools' not in llm.messages.calls[0]
        assert 'system' not in llm.messages.calls[0]

    @pytest.mark.asyncio
    async def test_max_tokens_stop_counts_as_completion(self):
        llm = FakeLLM([message([text_block('partial')], stop_reason='max_tokens')])
        response = await make_loop(llm, [ACCOUNTS]).run('hello')
        assert response.text == 'partial'
        assert response.stop_reason == 'max_tokens'

    @pytest.mark.asyncio
    async def test_text_blocks_joined(self):
        llm = FakeLLM([message([text_block('one'), text_block('two')])])
        response = await make_loop(llm, []).run('hello')
        assert response.text == 'one\ntwo'


# ============================================================================
# Tool dispatch
# ============================================================================


class TestToolDispatch:

    @pytest.mark.asyncio
    async def test_tool_round_trip(self):
        llm = FakeLLM([
            message(
                [text_block('Checking.'), tool_use_block('tu_1', 'list_accounts')],
                stop_reason='tool_use',
            ),
            message([text_block('You have one account.')], input_tokens=20, output_tokens=7),
        ])
        response = await make_loop(llm, [ACCOUNTS]).run('List accounts')

        assert response.text == 'You have one account.'
        assert response.iterations == 2
        assert response.usage.input_tokens == 30
        assert response.usage.output_tokens == 12
        assert [r.tool for r in response.tool_calls] == ['list_accounts']
        assert response.tool_calls[0].output == [{'id': '123', 'name': 'Main'}]
        assert response.tool_calls[0].is_error is False

        second = llm.messages.calls[1]['messages']
        assert second[1] == {
            'role': 'assistant',
            'content': [
                {'type': 'text', 'text': 'Checking.'},
                {'type': 'tool_use', 'id': 'tu_1', 'name': 'list_accounts', 'input': {}},
            ],
        }
        results = second[2]
        assert results['role'] == 'user'
        assert results['content'] == [{
            'type': 'tool_result',
            'tool_use_id': 'tu_1',
            'content': '[\n  {\n    "id": "123",\n    "name": "Main"\n  }\n]',
        }]

    @pytest.mark.asyncio
    async def test_first_request_messages_not_mutated(self):
        llm = FakeLLM([
            message([tool_use_block('tu_1', 'list_accounts')], stop_reason='tool_use'),
            message([text_block('done')]),
        ])
        await make_loop(llm, [ACCOUNTS]).run('List accounts')
        assert len(llm.messages.calls[0]['messages']) == 1
        assert len(llm.messages.calls[1]['messages']) == 3

    @pytest.mark.asyncio
    async def test_results_in_request_order_with_errors_flagged(self):
        llm = FakeLLM([
            message(
                [
                    tool_use_block('tu_a', 'query', {'gaql': 'x'}),
                    tool_use_block('tu_b', 'list_accounts'),
                    tool_use_block('tu_c', 'no_such_tool'),
                    tool_use_block('tu_d', 'send_slack_alert'),
                ],
                stop_reason='tool_use',
            ),
            message([text_block('done')]),
        ])
        response = await make_loop(llm, [ACCOUNTS, FAILING, TEXT]).run('go')

        results = llm.messages.calls[1]['messages'][2]['content']
        assert [r['tool_use_id'] for r in results] == ['tu_a', 'tu_b', 'tu_c', 'tu_d']
        assert results[0] == {
            'type': 'tool_result',
            'tool_use_id': 'tu_a',
            'content': 'customer_id is required',
            'is_error': True,
        }
        assert 'is_error' not in results[1]
        assert results[2]['is_error'] is True
        assert results[2]['content'] == 'Unknown tool: no_such_tool'
        assert results[3]['content'] == 'plain text result'

        records = response.tool_calls
        assert [r.tool for r in records] == ['query', 'list_accounts', 'no_such_tool', 'send_slack_alert']
        assert records[0].is_error and records[0].error == 'customer_id is required'
        assert records[0].input == {'gaql': 'x'}

    @pytest.mark.asyncio
    async def test_tools_in_one_turn_run_concurrently(self):
        running = []
        peak = []

        async def slow_handler(args):
            running.append(1)
            peak.append(len(running))
            await asyncio.sleep(0.01)
            running.pop()
            return 'ok'

        specs = [
            ToolSpec(ToolName.LIST_ACCOUNTS, 'a', SCHEMA, slow_handler),
            ToolSpec(ToolName.GET_SEARCH_TERMS, 'b', SCHEMA, slow_handler),
        ]
        llm = FakeLLM([
            message(
                [tool_use_block('1', 'list_accounts'), tool_use_block('2', 'get_search_terms')],
                stop_reason='tool_use',
            ),
            message([text_block('done')]),
        ])
        await make_loop(llm, specs).run('go')
        assert max(peak) == 2

    @pytest.mark.asyncio
    async def test_large_results_truncated(self):
        async def big_handler(args):
            return 'x' * 200

        spec = ToolSpec(ToolName.LIST_ACCOUNTS, 'a', SCHEMA, big_handler)
        llm = FakeLLM([
            message([tool_use_block('1', 'list_accounts')], stop_reason='tool_use'),
            message([text_block('done')]),
        ])
        await make_loop(llm, [spec], max_result_chars=50).run('go')
        content = llm.messages.calls[1]['messages'][2]['content'][0]['content']
        assert content == 'x' * 50 + TRUNCATION_MARKER

    @pytest.mark.asyncio
    async def test_dict_blocks_accepted(self):
        llm = FakeLLM([
            {
                'content': [{'type': 'tool_use', 'id': 't', 'name': 'list_accounts', 'input': {}}],
                'stop_reason': 'tool_use',
                'usage': {'input_tokens': 1, 'output_tokens': 1},
            },
            {
                'content': [{'type': 'text', 'text': 'fine'}],
                'stop_reason': 'end_turn',
                'usage': {'input_tokens': 1, 'output_tokens': 1},
            },
        ])
        response = await make_loop(llm, [ACCOUNTS]).run('go')
        assert response.text == 'fine'
        assert response.usage.total_tokens == 4


# ============================================================================
# Iteration cap
# ============================================================================


class TestIterationCap:

    @pytest.mark.asyncio
    async def test_exhaustion_raises_with_partial_log(self):
        llm = FakeLLM([
            message([tool_use_block(f'tu_{i}', 'list_accounts')], stop_reason='tool_use')
            for i in range(3)
        ])
        loop = make_loop(llm, [ACCOUNTS], max_iterations=3)

        with pytest.raises(AgentLoopExhaustedError, match=r'max iterations \(3\)') as exc_info:
            await loop.run('loop forever')

        assert len(llm.messages.calls) == 3
        assert len(exc_info.value.tool_calls) == 3
        assert exc_info.value.usage.input_tokens == 30

    @pytest.mark.asyncio
    async def test_run_override_of_cap(self):
        llm = FakeLLM([message([tool_use_block('1', 'list_accounts')], stop_reason='tool_use')])
        with pytest.raises(AgentLoopExhaustedError):
            await make_loop(llm, [ACCOUNTS], max_iterations=10).run('go', max_iterations=1)
        assert len(llm.messages.calls) == 1

    @pytest.mark.asyncio
    @pytest.mark.parametrize('cap', [0, -1])
    async def test_cap_below_one_rejected(self, cap):
        llm = FakeLLM([message([text_block('hi')])])
        with pytest.raises(ValueError, match='at least 1'):
            await make_loop(llm, [], max_iterations=10).run('go', max_iterations=cap)
        assert llm.messages.calls == []

    @pytest.mark.asyncio
    async def test_to_dict(self):
        llm = FakeLLM([message([text_block('hi')])])
        response = await make_loop(llm, []).run('go')
        assert response.to_dict() == {
            'response': 'hi',
            'tool_calls': [],
            'usage': {'input_tokens': 10, 'output_tokens': 5, 'total_tokens': 15},
            'iterations': 1,
            'stop_reason': 'end_turn',
        }
