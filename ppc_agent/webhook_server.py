"""
Webhook server for workflow automation tools (n8n, Zapier, cron).

Endpoints:
    GET  /          service info and supported actions
    GET  /health    liveness
    POST /webhook   {"action": "...", "params": {...}}

Every webhook reply uses the envelope
    {"success": bool, "data" | "error": ..., "timestamp": iso8601}
with HTTP 200 on success and 400 on any failure.

Usage:
    uvicorn.run(create_app(), host='0.0.0.0', port=3847)
"""

import json
import logging
import time
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Dict, Optional

from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from . import __version__
from .campaign_builder import create_campaign
from .context import AgentContext
from .errors import WebhookRequestError
from .orchestrator import PPCAgent
from .workflows import Workflows

logger = logging.getLogger(__name__)

DEFAULT_RESEARCH_LOCATION = 'Columbus,Ohio,United States'

ActionHandler = Callable[[PPCAgent, Dict[str, Any]], Awaitable[Any]]


def _timestamp() -> str:
    return datetime.now(timezone.utc).isoformat()


def _require_list(params: Dict[str, Any], key: str, label: str) -> list:
    value = params.get(key)
    if not isinstance(value, list) or not value:
        raise WebhookRequestError(f'Missing required param: {key} ({label})')
    return value


# =============================================================================
# Actions
# =============================================================================


async def _health_check(agent: PPCAgent, params: Dict[str, Any]) -> Any:
    response = await Workflows(agent).quick_health_check(params.get('customer_id'))
    return response.to_dict()


async def _full_audit(agent: PPCAgent, params: Dict[str, Any]) -> Any:
    response = await Workflows(agent).full_audit(params.get('customer_id'))
    return response.to_dict()


async def _create_campaign(agent: PPCAgent, params: Dict[str, Any]) -> Any:
    description = params.get('description')
    if not description:
        raise WebhookRequestError('Missing required param: description')
    overrides = {
        'name': params.get('business_name'),
        'website': params.get('website'),
        'phone': params.get('phone'),
        'services': params.get('services'),
    }
    business = agent.context.config.business.model_copy(
        update={key: value for key, value in overrides.items() if value}
    )
    result = await create_campaign(
        agent.context,
        description,
        business,
        customer_id=params.get('customer_id'),
        dry_run=params.get('dry_run') is not False,
    )
    return result.to_dict()


async def _keyword_research(agent: PPCAgent, params: Dict[str, Any]) -> Any:
    keywords = _require_list(params, 'keywords', 'array')
    location = params.get('location') or DEFAULT_RESEARCH_LOCATION
    response = await Workflows(agent).keyword_research(keywords, location)
    return response.to_dict()


async def _competitor_analysis(agent: PPCAgent, params: Dict[str, Any]) -> Any:
    competitors = _require_list(params, 'competitors', 'array of domains')
    response = await Workflows(agent).competitor_analysis(competitors)
    return response.to_dict()


async def _custom(agent: PPCAgent, params: Dict[str, Any]) -> Any:
    query = params.get('query')
    if not query:
        raise WebhookRequestError('Missing required param: query')
    response = await agent.run(query)
    return response.to_dict()


ACTIONS: Dict[str, ActionHandler] = {
    'health-check': _health_check,
    'full-audit': _full_audit,
    'create-campaign': _create_campaign,
    'keyword-research': _keyword_research,
    'competitor-analysis': _competitor_analysis,
    'custom': _custom,
}


# =============================================================================
# App
# =============================================================================


def create_app(agent_factory: Optional[Callable[[], PPCAgent]] = None) -> FastAPI:
    """
    Build the webhook app.

    The agent is created on the first webhook call and closed on shutdown.
    """
    factory = agent_factory or (lambda: PPCAgent(AgentContext()))
    state: Dict[str, Optional[PPCAgent]] = {'agent': None}

    def get_agent() -> PPCAgent:
        if state['agent'] is None:
            state['agent'] = factory()
        return state['agent']

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        yield
        if state['agent'] is not None:
            await state['agent'].close()
            state['agent'] = None

    app = FastAPI(title='PPC Intelligence Agent Webhook Server', version=__version__, lifespan=lifespan)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=['*'],
        allow_methods=['GET', 'POST', 'OPTIONS'],
        allow_headers=['Content-Type', 'Authorization'],
    )

    @app.get('/')
    async def root():
        return {
            'name': 'PPC Intelligence Agent Webhook Server',
            'version': __version__,
            'endpoints': {
                'POST /webhook': 'Execute agent action',
                'GET /health': 'Health check',
            },
            'actions': list(ACTIONS),
        }

    @app.get('/health')
    async def health():
        return {'status': 'ok', 'timestamp': _timestamp()}

    @app.post('/webhook')
    async def webhook(request: Request):
        started = time.monotonic()
        agent: Optional[PPCAgent] = None
        try:
            agent = get_agent()
            try:
                body = json.loads((await request.body()) or b'{}')
            except ValueError:
                raise WebhookRequestError('Invalid JSON body')
            if not isinstance(body, dict):
                raise WebhookRequestError('Invalid JSON body')

            action = body.get('action')
            if not action:
                raise WebhookRequestError('Missing required field: action')
            handler = ACTIONS.get(action)
            if handler is None:
                raise WebhookRequestError(f'Unknown action: {action}')
            params = body.get('params') or {}
            if not isinstance(params, dict):
                raise WebhookRequestError('params must be an object')

            logger.info('Webhook received: %s', action)
            data = await handler(agent, params)
        except Exception as e:
            error = str(e) or type(e).__name__
            logger.error('Webhook error: %s', error, exc_info=not isinstance(e, WebhookRequestError))
            if agent is not None:
                await agent.context.notifier.send_message(f'*PPC Agent Webhook Error*\n\n{error}')
            return JSONResponse(
                status_code=400,
                content={'success': False, 'error': error, 'timestamp': _timestamp()},
            )

        logger.info('Webhook %s completed in %dms', action, (time.monotonic() - started) * 1000)
        # Tool outputs may hold values json cannot encode natively
        payload = json.dumps({'success': True, 'data': data, 'timestamp': _timestamp()}, default=str)
        return Response(content=payload, media_type='application/json')

    return app
