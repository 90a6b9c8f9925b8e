"""
aiohttp host for the agentic relay.
"""

import json
import logging

import aiohttp
from aiohttp import web
from aiohttp.web import Request, Response
from botbuilder.integration.aiohttp import (
    CloudAdapter,
    ConfigurationBotFrameworkAuthentication,
)

from .bot import RelayBot
from .config import Config, get_config
from .credentials import CredentialExchanger
from .exceptions import AuthExchangeError, BackendStreamError
from .relay import RelayCore
from .router import NotificationRouter
from .session_store import SessionStore, create_storage

MESSAGES_PATH = "/api/messages"

logger = logging.getLogger(__name__)


@web.middleware
async def request_logging_middleware(request: Request, handler):
    """Log the key fields of every activity posted to the messages endpoint."""
    if request.method != "POST" or not request.path.startswith(MESSAGES_PATH):
        return await handler(request)

    logger.info(">>> BOT MESSAGE RECEIVED <<<")
    body = await request.text()
    if body:
        try:
            payload = json.loads(body)
            sender = payload.get("from") or {}
            logger.info(f"  Channel: {payload.get('channelId', 'unknown')}")
            logger.info(f"  Type: {payload.get('type', 'unknown')}")
            logger.info(f"  From: {sender.get('name', 'unknown')}")
            logger.info(f"  Text: {payload.get('text', '')}")
        except (ValueError, AttributeError):
            logger.info(f"  Body: {body[:300] + '...' if len(body) > 300 else body}")

    try:
        response = await handler(request)
    except web.HTTPException as e:
        logger.info(f"<<< Response: {e.status}")
        raise
    logger.info(f"<<< Response: {response.status}")
    return response


@web.middleware
async def relay_error_middleware(request: Request, handler):
    """Map relay failures to HTTP statuses the channel understands."""
    try:
        return await handler(request)
    except AuthExchangeError as e:
        logger.error(f"[RELAY] {e.stage} failed: {e.message}")
        raise web.HTTPUnauthorized() from e
    except BackendStreamError as e:
        logger.error(f"[RELAY] {e.stage} failed: {e.message}")
        raise web.HTTPBadGateway() from e
    except web.HTTPException:
        raise
    except Exception as e:
        logger.exception(f"[RELAY] Unhandled error: {e}")
        raise web.HTTPInternalServerError() from e


def create_app(config: Config) -> web.Application:
    """Wire the adapter, bot and relay into an aiohttp application."""
    adapter = CloudAdapter(ConfigurationBotFrameworkAuthentication(config.bot))
    relay = RelayCore(
        config.copilot,
        SessionStore(create_storage(config.storage)),
        CredentialExchanger(config.bot),
    )
    bot = RelayBot(relay, NotificationRouter(), config.bot.oauth_connection_name)

    async def messages(req: Request) -> Response:
        return await adapter.process(req, bot)

    async def index(req: Request) -> Response:
        return web.Response(text="Agentic Relay")

    async def http_session_ctx(app: web.Application):
        relay.http_session = aiohttp.ClientSession()
        yield
        await relay.http_session.close()

    app = web.Application(
        middlewares=[request_logging_middleware, relay_error_middleware]
    )
    app.router.add_get("/", index)
    app.router.add_post(MESSAGES_PATH, messages)
    app.cleanup_ctx.append(http_session_ctx)
    return app


def main():
    config = get_config()
    logging.basicConfig(
        level=getattr(logging, config.monitoring.log_level.upper(), logging.INFO),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )
    web.run_app(create_app(config), host=config.server.host, port=config.server.port)


if __name__ == "__main__":
    main()
