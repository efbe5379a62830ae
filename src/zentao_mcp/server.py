from __future__ import annotations

import asyncio
import logging
import os

from mcp.server.fastmcp import FastMCP

from zentao_mcp.client import ZenTaoClient
from zentao_mcp.config import ZenTaoConfig
from zentao_mcp.logging import setup_logging
from zentao_mcp.registry import register_discovered_tools

log = logging.getLogger("zentao_mcp.server")


def create_client_from_env() -> ZenTaoClient:
    try:
        return ZenTaoClient.from_config(ZenTaoConfig.from_env())
    except ValueError as exc:
        raise ValueError(f"Invalid ZenTao configuration: {exc}") from exc


def build_app(client: ZenTaoClient) -> FastMCP:
    app = FastMCP("zentao-mcp")
    register_discovered_tools(app, client)
    return app


# --- Entry point ----------------------------------------------------------- #


async def main() -> None:
    setup_logging(os.getenv("ZENTAO_LOG_LEVEL", "INFO"))
    client = create_client_from_env()
    log.info("Starting zentao-mcp against %s", client.base_url)

    async with client:
        app = build_app(client)
        await app.run_stdio_async()


def run() -> None:
    asyncio.run(main())


if __name__ == "__main__":
    run()
