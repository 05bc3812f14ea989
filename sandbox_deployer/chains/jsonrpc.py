"""Minimal JSON-RPC helpers for block lookups and liveness probes."""

from typing import Any

import httpx

JSONRPC_HEADERS = {"Content-Type": "application/json"}


def build_payload(method: str, params: list[Any] | None = None, request_id: int = 1) -> dict[str, Any]:
    """Build a JSON-RPC 2.0 request body."""
    return {
        "jsonrpc": "2.0",
        "id": request_id,
        "method": method,
        "params": params or [],
    }


async def post_rpc(
    client: httpx.AsyncClient,
    url: str,
    method: str,
    params: list[Any] | None = None,
    request_id: int = 1,
) -> httpx.Response:
    """POST a single JSON-RPC call and return the raw HTTP response."""
    return await client.post(
        url,
        json=build_payload(method, params, request_id),
        headers=JSONRPC_HEADERS,
    )
