"""
Tool-Invocation Loop

Drives one conversation with the Anthropic Messages API:

    send prompt -> model asks for tools -> run them -> send results -> ...

until the model stops asking for tools or the iteration cap is hit.
All tool calls requested in one model turn run concurrently; each yields
exactly one tool_result (in request order) whether the handler succeeded
or raised. Turns themselves are strictly sequential.

Usage:
    loop = AgentLoop(client, registry, model='claude-sonnet-4-5-20250929',
                     system_prompt='You are a PPC analyst.')
    response = await loop.run('Which campaigns wasted money last week?')
    print(response.text, response.usage.input_tokens)
"""

import asyncio
import json
import logging
import time
from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List, Optional, Tuple

from .errors import AgentLoopExhaustedError
from .tool_registry import ToolRegistry

logger = logging.getLogger(__name__)

DEFAULT_MAX_ITERATIONS = 10
MAX_RESULT_CHARS = 50000
TRUNCATION_MARKER = '\n... (truncated)'


@dataclass
class ToolCallRecord:
    tool: str
    tool_use_id: str
    input: Dict[str, Any]
    output: Any = None
    error: Optional[str] = None
    is_error: bool = False
    elapsed_ms: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class TokenUsage:
    input_tokens: int = 0
    output_tokens: int = 0

    def add(self, usage: Any) -> None:
        if usage is None:
            return
        self.input_tokens += int(_attr(usage, 'input_tokens') or 0)
        self.output_tokens += int(_attr(usage, 'output_tokens') or 0)

    @property
    def total_tokens(self) -> int:
        return self.input_tokens + self.output_tokens

    def to_dict(self) -> Dict[str, int]:
        return {
            'input_tokens': self.input_tokens,
            'output_tokens': self.output_tokens,
            'total_tokens': self.total_tokens,
        }


@dataclass
class AgentResponse:
    text: str
    tool_calls: List[ToolCallRecord] = field(default_factory=list)
    usage: TokenUsage = field(default_factory=TokenUsage)
    iterations: int = 0
    stop_reason: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'response': self.text,
            'tool_calls': [record.to_dict() for record in self.tool_calls],
            'usage': self.usage.to_dict(),
            'iterations': self.iterations,
            'stop_reason': self.stop_reason,
        }


def _attr(obj: Any, name: str, default: Any = None) -> Any:
    """Read a field from an SDK object or a plain dict."""
    if isinstance(obj, dict):
        return obj.get(name, default)
    return getattr(obj, name, default)


def _block_param(block: Any) -> Dict[str, Any]:
    """Convert a response content block into a request message param."""
    block_type = _attr(block, 'type')
    if block_type == 'text':
        return {'type': 'text', 'text': _attr(block, 'text', '')}
    if block_type == 'tool_use':
        return {
            'type': 'tool_use',
            'id': _attr(block, 'id'),
            'name': _attr(block, 'name'),
            'input': _attr(block, 'input') or {},
        }
    if isinstance(block, dict):
        return block
    return block.model_dump(exclude_none=True)


class AgentLoop:
    """One model + system prompt + tool registry."""

    def __init__(
        self,
        client: Any,
        registry: ToolRegistry,
        *,
        model: str,
        max_tokens: int = 8192,
        system_prompt: str = '',
        max_iterations: int = DEFAULT_MAX_ITERATIONS,
        name: str = 'agent',
        max_result_chars: int = MAX_RESULT_CHARS,
    ):
        self.client = client
        self.registry = registry
        self.model = model
        self.max_tokens = max_tokens
        self.system_prompt = system_prompt
        self.max_iterations = max_iterations
        self.name = name
        self.max_result_chars = max_result_chars

    async def run(self, message: str, max_iterations: Optional[int] = None) -> AgentResponse:
        """
        Run the conversation to completion.

        Raises:
            AgentLoopExhaustedError: the model still wanted tools after
                `max_iterations` requests (carries the partial tool log)
            ValueError: the effective cap is below 1
        """
        cap = self.max_iterations if max_iterations is None else max_iterations
        if cap < 1:
            raise ValueError(f'max_iterations must be at least 1, got {cap}')
        messages: List[Dict[str, Any]] = [{'role': 'user', 'content': message}]
        records: List[ToolCallRecord] = []
        usage = TokenUsage()
        tools = self.registry.definitions()

        logger.info('[%s] starting: %s', self.name, message[:120])

        for iteration in range(1, cap + 1):
            request: Dict[str, Any] = {
                'model': self.model,
                'max_tokens': self.max_tokens,
                'messages': list(messages),
            }
            if self.system_prompt:
                request['system'] = self.system_prompt
            if tools:
                request['tools'] = tools

            response = await self.client.messages.create(**request)
            usage.add(_attr(response, 'usage'))

            content = list(_attr(response, 'content') or [])
            stop_reason = _attr(response, 'stop_reason')
            tool_uses = [block for block in content if _attr(block, 'type') == 'tool_use']

            if stop_reason != 'tool_use' or not tool_uses:
                text = '\n'.join(
                    _attr(block, 'text', '')
                    for block in content
                    if _attr(block, 'type') == 'text'
                )
                logger.info(
                    '[%s] completed after %d iteration(s), %d tool call(s), stop_reason=%s',
                    self.name, iteration, len(records), stop_reason,
                )
                return AgentResponse(
                    text=text,
                    tool_calls=records,
                    usage=usage,
                    iterations=iteration,
                    stop_reason=stop_reason,
                )

            logger.info(
                '[%s] iteration %d: %d tool call(s): %s',
                self.name, iteration, len(tool_uses),
                ', '.join(str(_attr(block, 'name')) for block in tool_uses),
            )
            dispatched: List[Tuple[Dict[str, Any], ToolCallRecord]] = await asyncio.gather(
                *(self._dispatch(block) for block in tool_uses)
            )

            messages.append({
                'role': 'assistant',
                'content': [_block_param(block) for block in content],
            })
            messages.append({
                'role': 'user',
                'content': [result for result, _ in dispatched],
            })
            records.extend(record for _, record in dispatched)

        logger.error('[%s] exceeded max iterations (%d)', self.name, cap)
        raise AgentLoopExhaustedError(cap, records, usage)

    async def _dispatch(self, block: Any) -> Tuple[Dict[str, Any], ToolCallRecord]:
        """Run one tool_use block; never raises for handler failures."""
        name = str(_attr(block, 'name'))
        tool_use_id = _attr(block, 'id')
        tool_input = _attr(block, 'input') or {}
        started = time.monotonic()

        try:
            output = await self.registry.invoke(name, tool_input)
        except Exception as e:
            error = str(e) or type(e).__name__
            logger.warning('[%s] tool %s failed: %s', self.name, name, error)
            record = ToolCallRecord(
                tool=name,
                tool_use_id=tool_use_id,
                input=tool_input,
                error=error,
                is_error=True,
                elapsed_ms=_elapsed_ms(started),
            )
            return {
                'type': 'tool_result',
                'tool_use_id': tool_use_id,
                'content': error,
                'is_error': True,
            }, record

        record = ToolCallRecord(
            tool=name,
            tool_use_id=tool_use_id,
            input=tool_input,
            output=output,
            elapsed_ms=_elapsed_ms(started),
        )
        return {
            'type': 'tool_result',
            'tool_use_id': tool_use_id,
            'content': self._serialize(output),
        }, record

    def _serialize(self, output: Any) -> str:
        text = output if isinstance(output, str) else json.dumps(output, indent=2, default=str)
        if len(text) > self.max_result_chars:
            return text[:self.max_result_chars] + TRUNCATION_MARKER
        return text


def _elapsed_ms(started: float) -> float:
    return round((time.monotonic() - started) * 1000, 1)
