"""
Run Coordinator

Drives every requested chain through the deployment pipeline, one chain at
a time and in request order:

    RESOLVING_BLOCK -> PROVISIONING -> POLLING -> {DEPLOYING, SKIPPED_NOT_LIVE}
    -> RECONCILING -> RECORDED

A failure while resolving, provisioning or deploying is recorded against
that chain and the run moves on to the next one. Only configuration errors
abort the run, and they do so before any chain is touched.
"""

from collections.abc import Sequence
from datetime import UTC, datetime
from pathlib import Path

import structlog

from sandbox_deployer.chains.resolver import BlockResolver, get_block_resolver
from sandbox_deployer.config import Settings
from sandbox_deployer.deploy.artifacts import load_event_abis, reconcile
from sandbox_deployer.deploy.runner import DeploymentRunner
from sandbox_deployer.exceptions import ConfigurationError, DeployerError
from sandbox_deployer.models import (
    ChainRequest,
    ChainStage,
    DeploymentRecord,
    DeploymentStatus,
    RunSummary,
    SandboxEnvironment,
)
from sandbox_deployer.monitoring.logging import bind_context, log_duration, unbind_context
from sandbox_deployer.sandbox.liveness import (
    DEFAULT_DELAY_SECONDS,
    DEFAULT_MAX_RETRIES,
    await_liveness,
)
from sandbox_deployer.sandbox.provisioner import SandboxProvisioner

logger = structlog.get_logger(__name__)


class RunCoordinator:
    """Sequential per-chain deployment pipeline."""

    def __init__(
        self,
        provisioner: SandboxProvisioner,
        resolver: BlockResolver | None = None,
        runner: DeploymentRunner | None = None,
        liveness_max_retries: int = DEFAULT_MAX_RETRIES,
        liveness_delay_seconds: float = DEFAULT_DELAY_SECONDS,
        http_timeout: float = 30.0,
    ) -> None:
        """
        Initialize the coordinator.

        Args:
            provisioner: Sandbox provisioning client
            resolver: Latest-block resolver (defaults to the global one)
            runner: Deployment command runner
            liveness_max_retries: Probes before a sandbox is declared not live
            liveness_delay_seconds: Pause between liveness probes
            http_timeout: Timeout for liveness probes
        """
        self._provisioner = provisioner
        self._resolver = resolver or get_block_resolver()
        self._runner = runner or DeploymentRunner()
        self._liveness_max_retries = liveness_max_retries
        self._liveness_delay_seconds = liveness_delay_seconds
        self._http_timeout = http_timeout

        self._logger = logger.bind(component="coordinator")

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        resolver: BlockResolver | None = None,
        runner: DeploymentRunner | None = None,
    ) -> "RunCoordinator":
        """Build a coordinator wired from deployer settings."""
        provisioner = SandboxProvisioner(
            api_url=settings.sandbox_api_url,
            api_token=settings.sandbox_api_token,
            timeout=settings.http_timeout_seconds,
        )
        return cls(
            provisioner=provisioner,
            resolver=resolver or BlockResolver(timeout=settings.http_timeout_seconds),
            runner=runner,
            liveness_max_retries=settings.liveness_max_retries,
            liveness_delay_seconds=settings.liveness_delay_seconds,
            http_timeout=settings.http_timeout_seconds,
        )

    async def run(
        self,
        chain_requests: Sequence[ChainRequest],
        deploy_command: str,
        working_directory: str | Path,
        repo_name: str,
        commit_hash: str,
    ) -> RunSummary:
        """
        Deploy to every requested chain.

        Args:
            chain_requests: Chains in the order they should be processed
            deploy_command: Shell command performing the deployment
            working_directory: Directory holding the project and its artifacts
            repo_name: Repository name, used in sandbox ids
            commit_hash: Commit being deployed, used in sandbox ids

        Returns:
            RunSummary with one record per request, in request order

        Raises:
            ConfigurationError: If the inputs are unusable
        """
        if not chain_requests:
            raise ConfigurationError("No chains requested")
        if not deploy_command or not deploy_command.strip():
            raise ConfigurationError("Deploy command is empty")
        workdir = Path(working_directory)
        if not workdir.is_dir():
            raise ConfigurationError(f"Working directory does not exist: {workdir}")

        started_at = datetime.now(UTC)
        self._logger.info(
            "deployment_run_started",
            chains=[request.chain_id for request in chain_requests],
            working_directory=str(workdir),
        )

        records: list[DeploymentRecord] = []
        failure_signal = False
        for request in chain_requests:
            record = await self.deploy_chain(request, deploy_command, workdir, repo_name, commit_hash)
            records.append(record)
            if record.exit_code == 1:
                failure_signal = True

        summary = RunSummary(
            records=tuple(records),
            failure_signal=failure_signal,
            started_at=started_at,
            finished_at=datetime.now(UTC),
        )
        self._logger.info(
            "deployment_run_finished",
            succeeded=len(summary.succeeded),
            failed=len(summary.failed),
            failure_signal=failure_signal,
        )
        return summary

    async def deploy_chain(
        self,
        request: ChainRequest,
        deploy_command: str,
        working_directory: Path,
        repo_name: str,
        commit_hash: str,
    ) -> DeploymentRecord:
        """Run one chain through the pipeline. Never raises DeployerError."""
        chain_id = request.chain_id
        block_number = request.block_number
        stage = ChainStage.RESOLVING_BLOCK
        sandbox_id: str | None = None
        rpc_url: str | None = None

        bind_context(chain_id=chain_id)
        try:
            if block_number is None:
                block_number = await self._resolver.resolve_latest_block(chain_id)

            stage = ChainStage.PROVISIONING
            handle = await self._provisioner.create_sandbox(
                repo_name, commit_hash, chain_id, block_number
            )
            sandbox_id, rpc_url = handle.sandbox_id, handle.rpc_url
            bind_context(sandbox_id=sandbox_id)

            stage = ChainStage.POLLING
            liveness = await await_liveness(
                rpc_url,
                max_retries=self._liveness_max_retries,
                delay_seconds=self._liveness_delay_seconds,
                timeout=self._http_timeout,
            )
            if not liveness:
                self._logger.warning(
                    "deployment_skipped_not_live",
                    chain_id=chain_id,
                    attempts=liveness.attempts,
                )
                return DeploymentRecord(
                    chain_id=chain_id,
                    block_number=block_number,
                    rpc_url=rpc_url,
                    sandbox_id=sandbox_id,
                    status=DeploymentStatus.FAILED,
                    stage=ChainStage.SKIPPED_NOT_LIVE,
                    error=f"Sandbox not live after {liveness.attempts} attempts",
                )

            stage = ChainStage.DEPLOYING
            with log_duration(self._logger, "deploy_run", chain_id=chain_id):
                outcome = await self._runner.run_deploy(
                    deploy_command,
                    working_directory,
                    SandboxEnvironment.from_handle(chain_id, handle),
                )

            stage = ChainStage.RECONCILING
            broadcast = reconcile(chain_id, working_directory, load_event_abis(working_directory))
        except (DeployerError, OSError) as e:
            self._logger.error(
                "chain_deployment_failed",
                chain_id=chain_id,
                stage=stage.value,
                error=str(e),
            )
            return DeploymentRecord(
                chain_id=chain_id,
                block_number=block_number,
                rpc_url=rpc_url,
                sandbox_id=sandbox_id,
                status=DeploymentStatus.FAILED,
                stage=stage,
                error=str(e),
            )
        finally:
            unbind_context("chain_id", "sandbox_id")

        record = DeploymentRecord(
            chain_id=chain_id,
            block_number=block_number,
            rpc_url=rpc_url,
            sandbox_id=sandbox_id,
            status=DeploymentStatus.FAILED if outcome.failed else DeploymentStatus.SUCCESS,
            stage=ChainStage.RECORDED,
            broadcast=broadcast,
            exit_code=outcome.exit_code,
            error=f"Deployment command exited with code {outcome.exit_code}" if outcome.failed else None,
        )
        self._logger.info(
            "chain_deployment_recorded",
            chain_id=chain_id,
            status=record.status.value,
            exit_code=outcome.exit_code,
            has_broadcast=broadcast is not None,
        )
        return record
