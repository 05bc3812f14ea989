"""
Run Notifier

Best-effort reporting of run start and completion to an external collector.

notify() never raises: delivery problems come back inside the returned
NotificationResult, which callers are free to ignore. The final status is
computed before delivery, so a completed run without a single deployed
contract is escalated to "failed" even when the collector is unreachable.
"""

from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any

import httpx
import structlog

from sandbox_deployer.ci import CIContext
from sandbox_deployer.exceptions import NotificationError
from sandbox_deployer.models import ContractInfo, RunSummary
from sandbox_deployer.transport import client_session

logger = structlog.get_logger(__name__)


class NotificationStage(str, Enum):
    """Points in a run at which the collector is notified."""

    STARTED = "started"
    COMPLETED = "completed"
    FAILED = "failed"


class RunStatus(str, Enum):
    """Run status reported to the collector."""

    STARTED = "started"
    SUCCESS = "success"
    FAILED = "failed"


@dataclass(frozen=True)
class NotificationResult:
    """Outcome of a notification attempt."""

    status: RunStatus
    delivered: bool
    escalated: bool = False
    skipped: bool = False
    error: str | None = None
    contracts: list[ContractInfo] = field(default_factory=list)


def extract_contracts(summary: RunSummary) -> list[ContractInfo]:
    """Collect every transaction that produced a contract address."""
    contracts: list[ContractInfo] = []
    for record in summary.records:
        if record.broadcast is None:
            continue
        receipts = {
            r.transaction_hash.lower(): r
            for r in record.broadcast.receipts
            if r.transaction_hash
        }
        for tx in record.broadcast.transactions:
            if not tx.contract_address:
                continue
            receipt = receipts.get((tx.hash or "").lower())
            block_number = None
            if receipt is not None and receipt.block_number is not None:
                block_number = receipt.block_number_value
            contracts.append(
                ContractInfo(
                    chain_id=record.chain_id,
                    name=tx.contract_name,
                    address=tx.contract_address,
                    transaction_hash=tx.hash,
                    block_number=block_number,
                )
            )
    return contracts


def determine_status(
    stage: NotificationStage,
    summary: RunSummary | None,
    contracts: list[ContractInfo] | None = None,
) -> tuple[RunStatus, bool]:
    """
    Compute the reported status and whether validation escalated it.

    Contracts are extracted from the summary when not supplied.

    Returns:
        (status, escalated) where escalated means the run finished but no
        usable contracts were deployed on any chain
    """
    if stage == NotificationStage.STARTED:
        return RunStatus.STARTED, False
    if stage == NotificationStage.FAILED or summary is None:
        return RunStatus.FAILED, False
    if contracts is None:
        contracts = extract_contracts(summary)
    if not contracts:
        return RunStatus.FAILED, True
    if summary.failure_signal:
        return RunStatus.FAILED, False
    return RunStatus.SUCCESS, False


def default_message(stage: NotificationStage, summary: RunSummary | None, escalated: bool) -> str:
    if stage == NotificationStage.STARTED:
        return "Sandbox deployment started"
    if escalated:
        return "Deployment finished but no contracts were deployed"
    if summary is None:
        return "Sandbox deployment failed"
    return (
        f"Sandbox deployment finished: {len(summary.succeeded)}/{len(summary.records)} "
        "chains succeeded"
    )


class Notifier:
    """Client for the run notification collector."""

    def __init__(
        self,
        url: str | None,
        context: CIContext,
        commit_hash: str | None = None,
        token: str | None = None,
        timeout: float = 10.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        """
        Initialize the notifier.

        Args:
            url: Collector endpoint; None disables delivery
            context: CI run metadata
            commit_hash: Commit override (defaults to the CI commit)
            token: Optional bearer token for the collector
            timeout: HTTP timeout in seconds
            client: Optional shared httpx client
        """
        self._url = url
        self._context = context
        self._commit_hash = commit_hash or context.sha
        self._token = token
        self._timeout = timeout
        self._client = client

    @property
    def enabled(self) -> bool:
        return bool(self._url)

    def build_payload(
        self,
        status: RunStatus,
        message: str,
        summary: RunSummary | None,
        contracts: list[ContractInfo],
    ) -> dict[str, Any]:
        deployments: list[dict[str, Any]] = []
        if summary is not None:
            for record in summary.records:
                deployments.append({
                    "chainId": record.chain_id,
                    "blockNumber": record.block_number,
                    "rpcUrl": record.rpc_url,
                    "sandboxId": record.sandbox_id,
                    "status": record.status.value,
                    "stage": record.stage.value,
                    "error": record.error,
                    "contracts": [
                        c.model_dump(by_alias=True)
                        for c in contracts
                        if c.chain_id == record.chain_id
                    ],
                })

        return {
            "timestamp": datetime.now(UTC).isoformat(),
            "status": status.value,
            "payload": {
                "repositoryName": self._context.repo_name,
                "repositoryOwner": self._context.owner,
                "actionUrl": self._context.action_url,
                "commitHash": self._commit_hash,
                "workflow": self._context.workflow,
                "message": message,
                "deployments": deployments,
            },
        }

    async def _deliver(self, body: dict[str, Any]) -> None:
        headers = {"Content-Type": "application/json"}
        if self._token:
            headers["Authorization"] = f"Bearer {self._token}"
        async with client_session(self._client, self._timeout) as client:
            response = await client.post(self._url, json=body, headers=headers)
        if not response.is_success:
            raise NotificationError(f"Collector responded with status {response.status_code}")

    async def notify(
        self,
        stage: NotificationStage,
        summary: RunSummary | None = None,
        message: str | None = None,
    ) -> NotificationResult:
        """
        Report a run stage to the collector. Never raises.

        Args:
            stage: Run stage being reported
            summary: Run summary, for completed/failed stages
            message: Free-text message (derived from the stage when omitted)

        Returns:
            NotificationResult with the computed status and delivery outcome
        """
        contracts = extract_contracts(summary) if summary is not None else []
        status, escalated = determine_status(stage, summary, contracts)
        if escalated:
            logger.error("deployment_validation_failed", reason="no deployed contracts found")

        if not self.enabled:
            logger.debug("notification_skipped", stage=stage.value)
            return NotificationResult(
                status=status,
                delivered=False,
                escalated=escalated,
                skipped=True,
                contracts=contracts,
            )

        try:
            body = self.build_payload(
                status,
                message or default_message(stage, summary, escalated),
                summary,
                contracts,
            )
            await self._deliver(body)
        except Exception as e:  # Intentional broad catch: notification errors must not affect the run
            logger.warning("notification_failed", stage=stage.value, error=str(e))
            return NotificationResult(
                status=status,
                delivered=False,
                escalated=escalated,
                error=str(e),
                contracts=contracts,
            )

        logger.info("notification_sent", stage=stage.value, status=status.value)
        return NotificationResult(
            status=status,
            delivered=True,
            escalated=escalated,
            contracts=contracts,
        )
