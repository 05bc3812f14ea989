"""
Deployment Pipeline Models

Data structures shared by every stage of the sandbox deployment pipeline:
chain requests coming from CI, sandbox handles returned by the provisioning
service, broadcast artifacts produced by the deployment tool, and the
per-chain records that make up a run summary.

Artifact models (transactions, receipts, logs) keep unknown fields so a
reconciled record round-trips the deployment tool's JSON without loss.
"""

import json
from dataclasses import dataclass
from datetime import UTC, datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator


def parse_quantity(value: str | int) -> int:
    """
    Parse a numeric quantity as found in RPC responses and broadcast files.

    Accepts plain integers, decimal strings and 0x-prefixed hex strings.

    Raises:
        ValueError: If the value is not a non-negative integer quantity
    """
    if isinstance(value, bool):
        raise ValueError(f"Invalid quantity: {value!r}")
    if isinstance(value, int):
        number = value
    elif isinstance(value, str):
        text = value.strip()
        if text[:2].lower() == "0x":
            number = int(text[2:] or "0", 16)
        else:
            number = int(text, 10)
    else:
        raise ValueError(f"Invalid quantity: {value!r}")
    if number < 0:
        raise ValueError(f"Negative quantity: {value!r}")
    return number


class DeploymentStatus(str, Enum):
    """Final status of one chain's deployment."""

    SUCCESS = "success"
    FAILED = "failed"


class ChainStage(str, Enum):
    """
    Per-chain pipeline states.

    RESOLVING_BLOCK -> PROVISIONING -> POLLING -> {DEPLOYING, SKIPPED_NOT_LIVE}
    -> RECONCILING -> RECORDED
    """

    RESOLVING_BLOCK = "resolving_block"
    PROVISIONING = "provisioning"
    POLLING = "polling"
    DEPLOYING = "deploying"
    SKIPPED_NOT_LIVE = "skipped_not_live"
    RECONCILING = "reconciling"
    RECORDED = "recorded"


# =============================================================================
# Inputs and sandbox handles
# =============================================================================


class ChainRequest(BaseModel):
    """A chain to deploy to, optionally pinned to a fork block."""

    model_config = ConfigDict(populate_by_name=True, frozen=True, extra="ignore")

    chain_id: int = Field(alias="chainId", gt=0, description="EVM chain id")
    block_number: int | None = Field(
        default=None,
        alias="blockNumber",
        ge=0,
        description="Fork block; resolved to the latest block when absent",
    )


class SandboxHandle(BaseModel):
    """Connection details of a provisioned sandbox node."""

    model_config = ConfigDict(frozen=True)

    sandbox_id: str
    rpc_url: str
    mnemonic: str | None = None


@dataclass(frozen=True)
class SandboxEnvironment:
    """
    Configuration handed to the deployment command for one chain.

    Passed explicitly to the runner instead of being exported into the
    orchestrator's own environment.
    """

    chain_id: int
    rpc_url: str
    sandbox_id: str
    mnemonic: str | None = None

    @classmethod
    def from_handle(cls, chain_id: int, handle: SandboxHandle) -> "SandboxEnvironment":
        return cls(
            chain_id=chain_id,
            rpc_url=handle.rpc_url,
            sandbox_id=handle.sandbox_id,
            mnemonic=handle.mnemonic,
        )

    def as_env(self) -> dict[str, str]:
        """Environment variables the deployment command reads."""
        env = {
            "CHAIN_ID": str(self.chain_id),
            "SANDBOX_ID": self.sandbox_id,
            "SANDBOX_RPC_URL": self.rpc_url,
            "RPC_URL": self.rpc_url,
        }
        if self.mnemonic:
            env["SANDBOX_MNEMONIC"] = self.mnemonic
            env["MNEMONIC"] = self.mnemonic
        return env


@dataclass(frozen=True)
class LivenessResult:
    """Outcome of polling a sandbox until it answers RPC calls."""

    live: bool
    attempts: int

    def __bool__(self) -> bool:
        return self.live


@dataclass(frozen=True)
class DeploymentOutcome:
    """Exit status and captured output of the deployment command."""

    exit_code: int
    stdout: str
    stderr: str
    duration_ms: int = 0

    @property
    def failed(self) -> bool:
        # Only exit code 1 counts as a failed deployment.
        return self.exit_code == 1


# =============================================================================
# Broadcast artifacts
# =============================================================================


class ArtifactModel(BaseModel):
    """Base for deployment-tool JSON records; unknown fields are preserved."""

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    def to_artifact(self) -> dict[str, Any]:
        """Dump using the tool's camelCase keys, keeping only fields present."""
        return self.model_dump(mode="json", by_alias=True, exclude_unset=True)


class Log(ArtifactModel):
    """Raw event log attached to a receipt."""

    address: str | None = None
    topics: list[str] = Field(default_factory=list)
    data: str = "0x"


class DecodedLog(ArtifactModel):
    """Event log view; event is "Unknown" when no ABI matched the selector."""

    event: str = "Unknown"
    address: str | None = None
    topics: list[str] = Field(default_factory=list)
    data: str = "0x"
    args: dict[str, Any] = Field(default_factory=dict)


class Transaction(ArtifactModel):
    """A transaction the deployment tool broadcast."""

    hash: str | None = None
    transaction_type: str | None = Field(default=None, alias="transactionType")
    contract_name: str | None = Field(default=None, alias="contractName")
    contract_address: str | None = Field(default=None, alias="contractAddress")


class Receipt(ArtifactModel):
    """A mined transaction receipt."""

    transaction_hash: str | None = Field(default=None, alias="transactionHash")
    block_number: str | int | None = Field(default=None, alias="blockNumber")
    contract_address: str | None = Field(default=None, alias="contractAddress")
    gas_used: str | int | None = Field(default=None, alias="gasUsed")
    cumulative_gas_used: str | int | None = Field(default=None, alias="cumulativeGasUsed")
    effective_gas_price: str | int | None = Field(default=None, alias="effectiveGasPrice")
    logs: list[Log] = Field(default_factory=list)
    decoded_logs: list[DecodedLog] = Field(default_factory=list, alias="decodedLogs")

    @field_validator("block_number")
    @classmethod
    def validate_block_number(cls, v: str | int | None) -> str | int | None:
        """Reject block numbers that cannot be ordered numerically."""
        if v is not None:
            parse_quantity(v)
        return v

    @property
    def block_number_value(self) -> int:
        """Numeric block number; receipts without one sort first."""
        if self.block_number is None:
            return 0
        return parse_quantity(self.block_number)


class BroadcastRecord(ArtifactModel):
    """Merged broadcast artifacts of one chain."""

    transactions: list[Transaction] = Field(default_factory=list)
    receipts: list[Receipt] = Field(default_factory=list)
    libraries: list[str] = Field(default_factory=list)

    def dump_json(self) -> str:
        """Deterministic JSON rendering of the merged record."""
        return json.dumps(self.to_artifact(), indent=2, ensure_ascii=False)


class ContractInfo(BaseModel):
    """A deployed contract extracted from a broadcast record."""

    model_config = ConfigDict(populate_by_name=True)

    chain_id: int = Field(alias="chainId")
    name: str | None = Field(default=None, alias="contractName")
    address: str = Field(alias="contractAddress")
    transaction_hash: str | None = Field(default=None, alias="transactionHash")
    block_number: int | None = Field(default=None, alias="blockNumber")


# =============================================================================
# Run results
# =============================================================================


class DeploymentRecord(BaseModel):
    """Outcome of the whole pipeline for one requested chain."""

    chain_id: int
    block_number: int | None = None
    rpc_url: str | None = None
    sandbox_id: str | None = None
    status: DeploymentStatus
    stage: ChainStage
    broadcast: BroadcastRecord | None = None
    error: str | None = None
    exit_code: int | None = None

    @property
    def succeeded(self) -> bool:
        return self.status == DeploymentStatus.SUCCESS

    def to_payload(self) -> dict[str, Any]:
        """camelCase representation used in outputs and notifications."""
        return {
            "chainId": self.chain_id,
            "blockNumber": self.block_number,
            "rpcUrl": self.rpc_url,
            "sandboxId": self.sandbox_id,
            "status": self.status.value,
            "stage": self.stage.value,
            "exitCode": self.exit_code,
            "error": self.error,
            "broadcast": self.broadcast.to_artifact() if self.broadcast else None,
        }


class RunSummary(BaseModel):
    """Ordered per-chain results of one run. Immutable once built."""

    model_config = ConfigDict(frozen=True)

    records: tuple[DeploymentRecord, ...] = ()
    failure_signal: bool = False
    started_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
    finished_at: datetime = Field(default_factory=lambda: datetime.now(UTC))

    @property
    def succeeded(self) -> list[DeploymentRecord]:
        return [r for r in self.records if r.succeeded]

    @property
    def failed(self) -> list[DeploymentRecord]:
        return [r for r in self.records if not r.succeeded]

    def to_payload(self) -> list[dict[str, Any]]:
        return [record.to_payload() for record in self.records]

    def render(self) -> str:
        """Human-readable summary, one block per chain in request order."""
        rule = "=" * 60
        lines = [
            rule,
            f"Deployment summary: {len(self.succeeded)}/{len(self.records)} chains succeeded",
            rule,
        ]
        for position, record in enumerate(self.records, start=1):
            block = record.block_number if record.block_number is not None else "?"
            status = record.status.value.upper()
            if not record.succeeded:
                status = f"{status} ({record.stage.value})"
            lines.append(f"[{position}] chain {record.chain_id} @ block {block}: {status}")
            if record.sandbox_id:
                lines.append(f"    sandbox: {record.sandbox_id}")
            if record.rpc_url:
                lines.append(f"    rpc: {record.rpc_url}")
            if record.exit_code is not None:
                lines.append(f"    exit code: {record.exit_code}")
            if record.error:
                lines.append(f"    error: {record.error}")
            if record.broadcast is not None:
                broadcast = record.broadcast
                lines.append(
                    f"    transactions: {len(broadcast.transactions)}, "
                    f"receipts: {len(broadcast.receipts)}, "
                    f"libraries: {len(broadcast.libraries)}"
                )
                for tx in broadcast.transactions:
                    if tx.contract_address:
                        lines.append(f"      {tx.contract_name or '<unnamed>'} {tx.contract_address}")
            elif record.stage == ChainStage.RECORDED:
                lines.append("    no broadcast artifacts")
        lines.append(rule)
        return "\n".join(lines)
