"""Shared httpx client handling."""

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import httpx

USER_AGENT = "sandbox-deployer"


@asynccontextmanager
async def client_session(
    client: httpx.AsyncClient | None,
    timeout: float,
) -> AsyncIterator[httpx.AsyncClient]:
    """
    Yield the injected client, or a short-lived one closed on exit.

    Injected clients are owned by the caller and left open.
    """
    if client is not None:
        yield client
        return
    async with httpx.AsyncClient(
        timeout=httpx.Timeout(timeout),
        headers={"User-Agent": USER_AGENT},
    ) as session:
        yield session
