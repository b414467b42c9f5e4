import contextvars
import logging
from contextlib import AsyncExitStack

import uvicorn

from imagestatus_mcp.app import create_mcp_app
from imagestatus_mcp.arguments import Parser, ServerMode
from imagestatus_mcp.client import StoreClient
from imagestatus_mcp.context import IMAGE_SERVER, SYSTEM_CONTEXT, ContextMiddleware

log = logging.getLogger(__name__)


async def amain(parser: Parser) -> None:
    async with AsyncExitStack() as stack:
        client = await stack.enter_async_context(
            StoreClient(base_url=parser.url, token=parser.token, timeout=parser.timeout)
        )

        IMAGE_SERVER.set(client)
        SYSTEM_CONTEXT.set(parser.system_context.to_system_context())

        mcp = create_mcp_app()

        log.debug("Image store at %s, system context: %r", client.base_url, SYSTEM_CONTEXT.get())

        if parser.mode == ServerMode.HTTP:
            log.info("Starting MCP server on http://%s:%d", parser.http.listen, parser.http.port)

            app = mcp.streamable_http_app()
            app.add_middleware(ContextMiddleware, ctx=contextvars.copy_context())

            config = uvicorn.Config(
                app,
                host=parser.http.listen,
                port=parser.http.port,
                log_level="info",
            )
            server = uvicorn.Server(config)
            await server.serve()
        elif parser.mode == ServerMode.STDIO:
            log.info("Starting MCP server in stdio mode")
            await mcp.run_stdio_async()
        else:
            raise ValueError(f"Unsupported server mode: {parser.mode}")
