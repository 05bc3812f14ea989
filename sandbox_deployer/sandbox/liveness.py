"""
Liveness Poller

Waits for a freshly provisioned sandbox to answer JSON-RPC calls.

A probe is an eth_chainId call; the node counts as live when the HTTP
status is a success and the body carries a non-null "result".
"""

import asyncio
from typing import Any

import httpx
import structlog

from sandbox_deployer.chains.jsonrpc import post_rpc
from sandbox_deployer.models import LivenessResult
from sandbox_deployer.transport import client_session

logger = structlog.get_logger(__name__)

DEFAULT_MAX_RETRIES = 10
DEFAULT_DELAY_SECONDS = 5.0


def is_live_response(status_code: int, body: Any) -> bool:
    """Decide whether a probe response shows a live node."""
    if not 200 <= status_code < 300:
        return False
    return isinstance(body, dict) and body.get("result") is not None


async def probe(client: httpx.AsyncClient, url: str) -> bool:
    """Send one eth_chainId probe. Transport and decoding errors mean not live."""
    try:
        response = await post_rpc(client, url, "eth_chainId")
        body = response.json()
    except (httpx.HTTPError, httpx.InvalidURL, ValueError) as e:
        logger.debug("liveness_probe_error", url=url, error=str(e))
        return False
    return is_live_response(response.status_code, body)


async def await_liveness(
    url: str,
    max_retries: int = DEFAULT_MAX_RETRIES,
    delay_seconds: float = DEFAULT_DELAY_SECONDS,
    timeout: float = 30.0,
    client: httpx.AsyncClient | None = None,
) -> LivenessResult:
    """
    Poll a sandbox until it is live or the retry budget is spent.

    At most max_retries probes are sent, with a fixed delay between
    consecutive probes and none after the last one.

    Args:
        url: Sandbox RPC URL
        max_retries: Maximum number of probes
        delay_seconds: Pause between probes
        timeout: HTTP timeout per probe
        client: Optional shared httpx client

    Returns:
        LivenessResult; falsy when the budget was exhausted
    """
    async with client_session(client, timeout) as session:
        for attempt in range(1, max_retries + 1):
            if await probe(session, url):
                logger.info("sandbox_live", url=url, attempts=attempt)
                return LivenessResult(live=True, attempts=attempt)

            logger.info(
                "sandbox_not_live_yet",
                url=url,
                attempt=attempt,
                max_retries=max_retries,
            )
            if attempt < max_retries:
                await asyncio.sleep(delay_seconds)

    logger.warning("sandbox_liveness_exhausted", url=url, attempts=max_retries)
    return LivenessResult(live=False, attempts=max_retries)
