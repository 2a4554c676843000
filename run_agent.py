#!/usr/bin/env python3
"""
PPC Intelligence Agent Runner

Main entry point for the agent: interactive chat, one-shot requests, the
canned workflows, the campaign builder and the webhook server.

Usage:
    python run_agent.py                                  # interactive chat
    python run_agent.py "What keywords are wasting money?"
    python run_agent.py health-check --customer-id 123-456-7890
    python run_agent.py keywords "landscape design" "lawn care dublin ohio"
    python run_agent.py campaign validate lawn_care
    python run_agent.py serve --port 3847
"""

import argparse
import asyncio
import json
import logging
import os
import sys
import time
from typing import List, Optional

from ppc_agent import __version__
from ppc_agent.agent_loop import AgentResponse
from ppc_agent.campaign_builder import EXAMPLE_CAMPAIGNS, create_campaign, design_campaign
from ppc_agent.config import load_config
from ppc_agent.context import AgentContext
from ppc_agent.orchestrator import PPCAgent
from ppc_agent.sub_agents import run_competitor_intel, run_health_check
from ppc_agent.workflows import Workflows

BANNER = f"""
==============================================================================
                     PPC INTELLIGENCE AGENT v{__version__}
           Autonomous Google Ads management powered by Claude
==============================================================================

  Just tell me what you need in plain English:

  - "Create a landscape design campaign for Dublin and Powell"
  - "What's wasting money in my account?"
  - "Find competitors bidding on lawn care in Columbus"
  - "Run a health check"
  - "Research keywords for patio installation"
  - "Suggest negative keywords based on my search terms"

  Type 'help' for more examples, 'exit' or 'quit' to leave.
"""

HELP = """
What I can do:

  ACCOUNT HEALTH
     "Run a health check" / "What's wasting money?" / "Show my metrics"

  CAMPAIGN CREATION
     "Create a [service] campaign for [cities] with $X/day budget"

  COMPETITOR RESEARCH
     "Find competitors bidding on [keywords]"

  KEYWORD RESEARCH
     "Research keywords for [service]"

  NEGATIVE KEYWORDS
     "Suggest negative keywords" / "What searches should I block?"

  BUDGET OPTIMIZATION
     "How should I reallocate my budgets?"
"""

DEFAULT_KEYWORD_LOCATION = 'Columbus,Ohio,United States'
RULE = '-' * 70

COMMANDS = {
    'chat', 'ask', 'health-check', 'audit', 'competitors', 'competitor-intel',
    'keywords', 'campaign', 'serve',
}


def setup_logging(level: str = 'INFO'):
    """Setup logging configuration."""
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    )


logger = logging.getLogger(__name__)


def print_response(response: AgentResponse, started: Optional[float] = None):
    print(RULE)
    print()
    print(response.text)
    print()
    print(RULE)
    if response.tool_calls:
        tools = ', '.join(record.tool for record in response.tool_calls)
        print(f'Used {len(response.tool_calls)} tool(s): {tools}')
    if started is not None:
        print(f'Completed in {time.monotonic() - started:.1f}s')
    print(
        f'Tokens: {response.usage.input_tokens:,} in / '
        f'{response.usage.output_tokens:,} out'
    )


# -------------------------------------------------------------------
# Commands
# -------------------------------------------------------------------


async def run_chat(agent: PPCAgent):
    print(BANNER)
    loop = asyncio.get_running_loop()
    while True:
        try:
            line = await loop.run_in_executor(None, input, '\nYou: ')
        except (EOFError, KeyboardInterrupt):
            print()
            break

        text = line.strip()
        if not text:
            continue
        if text.lower() in ('exit', 'quit'):
            break
        if text.lower() == 'help':
            print(HELP)
            continue

        print('\nAgent: Thinking...\n')
        try:
            print_response(await agent.run(text))
        except Exception as e:
            logger.debug('Request failed', exc_info=True)
            print(f'\nError: {e}')
    print('Goodbye!')


def _campaign_description(words: List[str]) -> str:
    if not words:
        return EXAMPLE_CAMPAIGNS['landscape_design']
    if len(words) == 1 and words[0] in EXAMPLE_CAMPAIGNS:
        return EXAMPLE_CAMPAIGNS[words[0]]
    return ' '.join(words)


async def run_campaign(context: AgentContext, mode: str, words: List[str]):
    if mode == 'list':
        print('Available example campaigns:\n')
        for key, description in EXAMPLE_CAMPAIGNS.items():
            print(f'  {key}:')
            print(f'    {description[:90]}...\n')
        print('Usage:')
        print('  python run_agent.py campaign design landscape_design')
        print('  python run_agent.py campaign validate lawn_care')
        print('  python run_agent.py campaign create hardscaping')
        return

    description = _campaign_description(words)
    print(f'Campaign Request:\n{description}\n')

    if mode == 'design':
        print('Mode: DESIGN ONLY (no Google Ads calls)\n')
        spec = await design_campaign(context, description)
        print(json.dumps(spec.model_dump(by_alias=True), indent=2))
        return

    if mode == 'create':
        print('Mode: CREATE (LIVE - the campaign is created in PAUSED state)\n')
    else:
        print('Mode: VALIDATE (dry run)\n')
    result = await create_campaign(context, description, dry_run=(mode != 'create'))
    print(result.summary)
    if mode == 'validate' and result.dry_run_result is not None:
        print('\nDry Run Response:')
        print(json.dumps(result.dry_run_result, indent=2, default=str))


def run_serve(port: Optional[int], log_level: str):
    import uvicorn

    from ppc_agent.webhook_server import create_app

    config = load_config()
    port = port or config.server.port
    print(f'PPC Intelligence webhook server on http://{config.server.host}:{port}')
    print(f'  POST /webhook   {{"action": "health-check"}}')
    print('  GET  /health')
    uvicorn.run(create_app(), host=config.server.host, port=port, log_level=log_level.lower())


async def run_command(args: argparse.Namespace) -> int:
    async with AgentContext() as context:
        agent = PPCAgent(context)
        workflows = Workflows(agent)
        started = time.monotonic()

        if args.command == 'chat':
            await run_chat(agent)
        elif args.command == 'ask':
            print_response(await agent.run(' '.join(args.request)), started)
        elif args.command == 'health-check':
            result = await run_health_check(context, {'customer_id': args.customer_id})
            print(result['summary'])
        elif args.command == 'audit':
            print_response(await workflows.full_audit(args.customer_id), started)
        elif args.command == 'competitors':
            print_response(await workflows.competitor_analysis(args.domains), started)
        elif args.command == 'competitor-intel':
            seeds = args.seed_keywords or list(context.config.business.services[:3])
            result = await run_competitor_intel(context, {
                'target_domain': args.domain,
                'seed_keywords': seeds,
                'location': args.location,
            })
            print(result['summary'])
        elif args.command == 'keywords':
            print(f"Seed Keywords: {', '.join(args.seeds)}")
            print(f'Location: {args.location}\n')
            print_response(await workflows.keyword_research(args.seeds, args.location), started)
        elif args.command == 'campaign':
            await run_campaign(context, args.mode, args.words)
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description='PPC Intelligence Agent')
    parser.add_argument(
        '--log-level',
        default=os.getenv('PPC_LOG_LEVEL', 'INFO'),
        choices=['DEBUG', 'INFO', 'WARNING', 'ERROR'],
    )
    subparsers = parser.add_subparsers(dest='command', help='Available commands')

    subparsers.add_parser('chat', help='Interactive chat mode')

    ask_parser = subparsers.add_parser('ask', help='Run a single request')
    ask_parser.add_argument('request', nargs='+', help='Request in plain English')

    health_parser = subparsers.add_parser('health-check', help='Run the health check agent')
    health_parser.add_argument('--customer-id', dest='customer_id', help='Google Ads customer ID')

    audit_parser = subparsers.add_parser('audit', help='Run a full account audit')
    audit_parser.add_argument('--customer-id', dest='customer_id', help='Google Ads customer ID')

    competitors_parser = subparsers.add_parser('competitors', help='Analyze competitor domains')
    competitors_parser.add_argument('domains', nargs='+', help='Competitor domains')

    intel_parser = subparsers.add_parser(
        'competitor-intel', help='Run the competitor intelligence agent'
    )
    intel_parser.add_argument('domain', help='Your domain')
    intel_parser.add_argument('seed_keywords', nargs='*', help='Seed keywords')
    intel_parser.add_argument('--location', default='United States')

    keywords_parser = subparsers.add_parser('keywords', help='Keyword research')
    keywords_parser.add_argument('seeds', nargs='+', help='Seed keywords')
    keywords_parser.add_argument('--location', default=DEFAULT_KEYWORD_LOCATION)

    campaign_parser = subparsers.add_parser('campaign', help='Campaign builder')
    campaign_parser.add_argument('mode', choices=['design', 'validate', 'create', 'list'])
    campaign_parser.add_argument(
        'words', nargs='*', help='Example name (see "campaign list") or a description'
    )

    serve_parser = subparsers.add_parser('serve', help='Run the webhook server')
    serve_parser.add_argument('--port', type=int, default=None, help='Port to bind to')

    return parser


def normalize_argv(argv: List[str]) -> List[str]:
    """No arguments means chat; free text without a command means ask."""
    index = 0
    while index < len(argv) and argv[index].startswith('-'):
        # --log-level takes a value unless written as --log-level=X
        index += 2 if argv[index] == '--log-level' else 1
    if index >= len(argv):
        if '-h' in argv or '--help' in argv:
            return argv
        return argv + ['chat']
    if argv[index] not in COMMANDS:
        return argv[:index] + ['ask'] + argv[index:]
    return argv


def main(argv: Optional[List[str]] = None) -> int:
    argv = normalize_argv(list(sys.argv[1:] if argv is None else argv))
    args = build_parser().parse_args(argv)
    setup_logging(args.log_level)

    if args.command == 'serve':
        run_serve(args.port, args.log_level)
        return 0

    try:
        return asyncio.run(run_command(args))
    except KeyboardInterrupt:
        return 130
    except Exception as e:
        logger.debug('Command failed', exc_info=True)
        print(f'Error: {e}', file=sys.stderr)
        return 1


if __name__ == '__main__':
    sys.exit(main())
