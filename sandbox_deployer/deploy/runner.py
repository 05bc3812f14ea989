"""
Deployment Runner

Runs the caller-supplied deployment command against a sandbox and relays
its output to the orchestrator's own stdout/stderr as it is produced.

Exit code 1 is the only code classified as a failed deployment; any other
code lets the pipeline continue as a success.
"""

import asyncio
import codecs
import os
import sys
import time
from collections.abc import Mapping
from pathlib import Path
from typing import TextIO

import structlog

from sandbox_deployer.models import DeploymentOutcome, SandboxEnvironment

logger = structlog.get_logger(__name__)


def command_executable(command: str) -> str:
    """First word of a command line; arguments may carry secrets and are not logged."""
    words = command.split(maxsplit=1)
    return words[0] if words else ""


class DeploymentRunner:
    """Spawns the deployment command as a shell child process."""

    def __init__(
        self,
        stdout: TextIO | None = None,
        stderr: TextIO | None = None,
        base_env: Mapping[str, str] | None = None,
        chunk_size: int = 4096,
    ) -> None:
        """
        Initialize the runner.

        Args:
            stdout: Sink for the command's stdout (defaults to sys.stdout)
            stderr: Sink for the command's stderr (defaults to sys.stderr)
            base_env: Environment the command inherits (defaults to os.environ)
            chunk_size: Read size when relaying output
        """
        self._stdout = stdout
        self._stderr = stderr
        self._base_env = base_env
        self._chunk_size = chunk_size

    def build_env(self, environment: SandboxEnvironment | None) -> dict[str, str]:
        """Merge the inherited environment with the sandbox configuration."""
        env = dict(os.environ if self._base_env is None else self._base_env)
        if environment is not None:
            env.update(environment.as_env())
        return env

    async def _relay(self, stream: asyncio.StreamReader | None, sink: TextIO) -> str:
        """Copy a child stream to a sink chunk by chunk, returning what was read."""
        if stream is None:
            return ""
        decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        parts: list[str] = []
        while True:
            chunk = await stream.read(self._chunk_size)
            text = decoder.decode(chunk, final=not chunk)
            if text:
                sink.write(text)
                sink.flush()
                parts.append(text)
            if not chunk:
                break
        return "".join(parts)

    async def run_deploy(
        self,
        command: str,
        working_directory: str | Path,
        environment: SandboxEnvironment | None = None,
    ) -> DeploymentOutcome:
        """
        Run the deployment command and wait for it to exit.

        A failing command is reported through the outcome, never raised.

        Args:
            command: Shell command line
            working_directory: Directory the command runs in
            environment: Sandbox configuration exposed to the command

        Returns:
            DeploymentOutcome with exit code and captured output

        Raises:
            OSError: If the command cannot be spawned at all
        """
        stdout_sink = self._stdout or sys.stdout
        stderr_sink = self._stderr or sys.stderr

        logger.info(
            "deploy_command_starting",
            executable=command_executable(command),
            working_directory=str(working_directory),
            chain_id=environment.chain_id if environment else None,
        )

        start = time.monotonic()
        process = await asyncio.create_subprocess_shell(
            command,
            cwd=str(working_directory),
            env=self.build_env(environment),
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
        stdout_text, stderr_text = await asyncio.gather(
            self._relay(process.stdout, stdout_sink),
            self._relay(process.stderr, stderr_sink),
        )
        exit_code = await process.wait()
        duration_ms = int((time.monotonic() - start) * 1000)

        outcome = DeploymentOutcome(
            exit_code=exit_code,
            stdout=stdout_text,
            stderr=stderr_text,
            duration_ms=duration_ms,
        )
        if outcome.failed:
            logger.error("deploy_command_failed", exit_code=exit_code, duration_ms=duration_ms)
        else:
            logger.info("deploy_command_finished", exit_code=exit_code, duration_ms=duration_ms)
        return outcome
