"""
Sandbox Provisioner

Creates forked sandbox nodes through the external provisioning API.

Every call creates a new remote resource, so a request is attempted exactly
once; a failed creation surfaces as ProvisioningError instead of being
retried.
"""

import re
import secrets
from typing import Any

import httpx
import structlog
from pydantic import ValidationError

from sandbox_deployer.exceptions import ProvisioningError
from sandbox_deployer.models import SandboxHandle
from sandbox_deployer.transport import client_session

logger = structlog.get_logger(__name__)

_UNSAFE_NAME_CHARS = re.compile(r"[^A-Za-z0-9._-]+")


def make_sandbox_id(repo_name: str, commit_hash: str) -> str:
    """
    Derive a sandbox identifier unique across concurrent CI runs.

    Format: {repo_name}-{first 8 chars of commit}-{8 random hex chars}
    """
    name = _UNSAFE_NAME_CHARS.sub("-", repo_name).strip("-") or "sandbox"
    return f"{name}-{commit_hash[:8]}-{secrets.token_hex(4)}"


class SandboxProvisioner:
    """Client for the sandbox provisioning service."""

    def __init__(
        self,
        api_url: str,
        api_token: str,
        timeout: float = 30.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        """
        Initialize the provisioner.

        Args:
            api_url: Base URL of the provisioning API
            api_token: Bearer token for the API
            timeout: HTTP timeout in seconds
            client: Optional shared httpx client
        """
        self._api_url = api_url.rstrip("/")
        self._api_token = api_token
        self._timeout = timeout
        self._client = client

    def _headers(self) -> dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self._api_token:
            headers["Authorization"] = f"Bearer {self._api_token}"
        return headers

    async def create_sandbox(
        self,
        repo_name: str,
        commit_hash: str,
        chain_id: int,
        block_number: int | None,
    ) -> SandboxHandle:
        """
        Request a new forked sandbox node.

        Args:
            repo_name: Repository name, used in the sandbox id
            commit_hash: Commit being deployed, used in the sandbox id
            chain_id: Chain to fork
            block_number: Block to fork at, None lets the service pick

        Returns:
            SandboxHandle with the node's RPC URL and optional mnemonic

        Raises:
            ProvisioningError: On transport failure, non-success status or a
                response without a usable RPC URL
        """
        sandbox_id = make_sandbox_id(repo_name, commit_hash)
        payload: dict[str, Any] = {"chainId": chain_id, "nodeName": sandbox_id}
        if block_number is not None:
            payload["blockNumber"] = block_number

        logger.info(
            "sandbox_create_requested",
            chain_id=chain_id,
            block_number=block_number,
            sandbox_id=sandbox_id,
        )

        try:
            async with client_session(self._client, self._timeout) as client:
                response = await client.post(
                    f"{self._api_url}/sandbox",
                    json=payload,
                    headers=self._headers(),
                )
        except httpx.HTTPError as e:
            logger.error("sandbox_create_request_failed", sandbox_id=sandbox_id, error=str(e))
            raise ProvisioningError(f"Sandbox creation request failed: {e}") from e

        if not response.is_success:
            logger.error(
                "sandbox_create_rejected",
                sandbox_id=sandbox_id,
                status_code=response.status_code,
                body=response.text[:500],
            )
            raise ProvisioningError(
                f"Sandbox creation failed with status {response.status_code}",
                status_code=response.status_code,
            )

        try:
            data = response.json()
        except ValueError as e:
            raise ProvisioningError(
                "Sandbox creation returned a non-JSON body",
                status_code=response.status_code,
            ) from e

        rpc_url = data.get("rpcUrl") if isinstance(data, dict) else None
        if not rpc_url:
            raise ProvisioningError(
                "Sandbox creation response has no rpcUrl",
                status_code=response.status_code,
            )

        try:
            handle = SandboxHandle(
                sandbox_id=sandbox_id,
                rpc_url=rpc_url,
                mnemonic=data.get("mnemonic") or None,
            )
            scheme = httpx.URL(handle.rpc_url).scheme
        except (httpx.InvalidURL, ValidationError) as e:
            logger.error("sandbox_create_invalid_response", sandbox_id=sandbox_id, error=str(e))
            raise ProvisioningError(
                f"Sandbox creation returned an unusable handle: {e}",
                status_code=response.status_code,
            ) from e

        if scheme not in ("http", "https"):
            raise ProvisioningError(
                f"Sandbox rpcUrl is not an http(s) URL: {rpc_url}",
                status_code=response.status_code,
            )

        logger.info("sandbox_created", sandbox_id=sandbox_id, rpc_url=handle.rpc_url)
        return handle
