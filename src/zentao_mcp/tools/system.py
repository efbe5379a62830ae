from __future__ import annotations

from typing import Any, Dict, Optional

from zentao_mcp.client import ZenTaoClient


async def get_token(client: ZenTaoClient, force: bool = False) -> Dict[str, str]:
    """
    Get or refresh the ZenTao API token (cached until its TTL runs out).
    The token is masked unless ZENTAO_EXPOSE_TOKEN is enabled.
    """
    grant = await client.get_token(force=bool(force))
    return grant.as_dict() if client.expose_token else grant.masked()


async def call(
    client: ZenTaoClient,
    path: str,
    method: str = "GET",
    query: Optional[Dict[str, Any]] = None,
    body: Any = None,
) -> Dict[str, Any]:
    """
    Call any ZenTao REST API v1 path with the Token header, e.g. /projects or bugs/123.
    The path must be relative to the API prefix.
    """
    resp = await client.call(path, method or "GET", query=query, body=body, tool="call")
    return resp.as_dict()
