"""
Sandbox Deployer command line entry point.

Usage:
    sandbox-deployer --chains '[{"chainId": 1}, {"chainId": 137, "blockNumber": 5000000}]' \
        --deploy-command "forge script script/Deploy.s.sol --broadcast"

Every option falls back to its DEPLOYER_* environment variable, and the
repository name and commit default to the GitHub Actions context.
"""

import argparse
import asyncio
import json
import sys
from pathlib import Path

import structlog

from sandbox_deployer import __version__
from sandbox_deployer.ci import CIContext, GitHubActions
from sandbox_deployer.config import Settings, get_settings, parse_chain_requests
from sandbox_deployer.coordinator import RunCoordinator
from sandbox_deployer.exceptions import ConfigurationError
from sandbox_deployer.models import RunSummary
from sandbox_deployer.monitoring.logging import configure_logging
from sandbox_deployer.notifier import NotificationStage, Notifier

logger = structlog.get_logger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="sandbox-deployer",
        description="Deploy contracts to forked sandbox nodes, one per chain",
    )
    parser.add_argument(
        "--chains",
        help='JSON array of {"chainId", "blockNumber"?} objects (env: DEPLOYER_CHAINS)',
    )
    parser.add_argument(
        "--deploy-command",
        help="Shell command performing the deployment (env: DEPLOYER_DEPLOY_COMMAND)",
    )
    parser.add_argument(
        "--working-directory",
        help="Directory the deploy command runs in (env: DEPLOYER_WORKING_DIRECTORY)",
    )
    parser.add_argument("--repo-name", help="Repository name used in sandbox ids")
    parser.add_argument("--commit", help="Commit hash used in sandbox ids and notifications")
    parser.add_argument(
        "--json-logs",
        action="store_true",
        help="Emit JSON log lines",
    )
    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        type=str.upper,
        help="Logging level (env: DEPLOYER_LOG_LEVEL)",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    return parser


def render_step_summary(summary: RunSummary) -> str:
    """Markdown block for the job step summary."""
    return f"## Sandbox deployment\n\n```\n{summary.render()}\n```\n"


async def run_deployment(
    args: argparse.Namespace,
    settings: Settings,
    context: CIContext,
    actions: GitHubActions,
    coordinator: RunCoordinator | None = None,
    notifier: Notifier | None = None,
) -> int:
    """
    Execute one deployment run and publish its results.

    Returns:
        Process exit code, 1 when the platform failure signal was raised
    """
    try:
        chain_requests = (
            parse_chain_requests(args.chains) if args.chains else settings.chain_requests()
        )
        deploy_command = args.deploy_command or settings.deploy_command
        if not deploy_command.strip():
            raise ConfigurationError("No deploy command configured")
    except ConfigurationError as e:
        logger.error("configuration_invalid", error=str(e))
        actions.set_failed(str(e))
        return 1

    actions.add_mask(settings.sandbox_api_token)
    if not settings.sandbox_api_token:
        logger.warning(
            "sandbox_api_token_missing",
            detail="provisioning requests will be sent unauthenticated",
        )

    working_directory = Path(args.working_directory or settings.working_directory)
    repo_name = args.repo_name or context.repo_name or working_directory.resolve().name
    commit_hash = args.commit or context.sha or "0000000"

    if notifier is None:
        notifier = Notifier(
            url=settings.notification_url,
            context=context,
            commit_hash=commit_hash,
            token=settings.notification_token,
            timeout=settings.http_timeout_seconds,
        )
    if coordinator is None:
        coordinator = RunCoordinator.from_settings(settings)

    await notifier.notify(NotificationStage.STARTED)

    try:
        summary = await coordinator.run(
            chain_requests,
            deploy_command,
            working_directory,
            repo_name,
            commit_hash,
        )
    except ConfigurationError as e:
        logger.error("deployment_run_aborted", error=str(e))
        actions.set_failed(str(e))
        await notifier.notify(NotificationStage.FAILED, message=str(e))
        return 1
    except Exception as e:
        logger.exception("deployment_run_crashed", error=str(e))
        actions.set_failed(f"Deployment run crashed: {e}")
        await notifier.notify(NotificationStage.FAILED, message=f"Deployment run crashed: {e}")
        return 1

    print(summary.render(), flush=True)
    actions.set_output("deployments", json.dumps(summary.to_payload()))
    actions.append_step_summary(render_step_summary(summary))

    result = await notifier.notify(NotificationStage.COMPLETED, summary)

    if summary.failure_signal:
        actions.set_failed("Deployment command exited with code 1")
    if result.escalated:
        actions.set_failed("Deployment finished but no contracts were deployed")

    return 1 if actions.failed else 0


def main(argv: list[str] | None = None) -> int:
    """Main entry point."""
    args = build_parser().parse_args(argv)
    context = CIContext()
    actions = GitHubActions(context)

    try:
        settings = get_settings()
    except ConfigurationError as e:
        configure_logging(level=args.log_level or "INFO", json_output=args.json_logs)
        logger.error("configuration_invalid", error=str(e))
        actions.set_failed(str(e))
        return 1

    configure_logging(
        level=args.log_level or settings.log_level,
        json_output=args.json_logs or settings.log_json,
    )
    return asyncio.run(run_deployment(args, settings, context, actions))


if __name__ == "__main__":
    sys.exit(main())
