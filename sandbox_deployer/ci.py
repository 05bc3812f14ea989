"""
CI Platform Integration

Reads run metadata from the GitHub Actions environment and writes the
platform signals the deployer produces: failure annotations, step outputs,
masked values and the job step summary.
"""

import sys
from pathlib import Path
from typing import TextIO
from uuid import uuid4

import structlog
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = structlog.get_logger(__name__)


def escape_command_data(value: str) -> str:
    """Escape a value for a workflow command line."""
    return value.replace("%", "%25").replace("\r", "%0D").replace("\n", "%0A")


class CIContext(BaseSettings):
    """Run metadata exposed by GitHub Actions as GITHUB_* variables."""

    model_config = SettingsConfigDict(env_prefix="GITHUB_", case_sensitive=False, extra="ignore")

    repository: str = Field(default="", description="owner/name of the repository")
    repository_owner: str = Field(default="", description="Repository owner")
    sha: str = Field(default="", description="Commit being built")
    workflow: str = Field(default="", description="Workflow name")
    server_url: str = Field(default="https://github.com", description="GitHub server URL")
    run_id: str = Field(default="", description="Workflow run id")
    output: str | None = Field(default=None, description="Path of the step output file")
    step_summary: str | None = Field(default=None, description="Path of the step summary file")

    @property
    def repo_name(self) -> str:
        return self.repository.rsplit("/", 1)[-1] if self.repository else ""

    @property
    def owner(self) -> str:
        if self.repository_owner:
            return self.repository_owner
        return self.repository.split("/", 1)[0] if "/" in self.repository else ""

    @property
    def action_url(self) -> str:
        if not self.repository or not self.run_id:
            return ""
        return f"{self.server_url.rstrip('/')}/{self.repository}/actions/runs/{self.run_id}"


class GitHubActions:
    """Writer for workflow commands and environment files."""

    def __init__(self, context: CIContext, stream: TextIO | None = None) -> None:
        self.context = context
        self._stream = stream
        self.failed = False

    def _write_command(self, line: str) -> None:
        stream = self._stream or sys.stdout
        stream.write(line + "\n")
        stream.flush()

    def set_failed(self, message: str) -> None:
        """Raise the platform failure signal with an error annotation."""
        self.failed = True
        self._write_command(f"::error::{escape_command_data(message)}")

    def add_mask(self, value: str | None) -> None:
        """Hide a secret value from the job log."""
        if value:
            self._write_command(f"::add-mask::{escape_command_data(value)}")

    def set_output(self, name: str, value: str) -> None:
        """Publish a step output through GITHUB_OUTPUT."""
        if not self.context.output:
            logger.debug("step_output_unavailable", name=name)
            return
        delimiter = f"ghadelimiter_{uuid4()}"
        with Path(self.context.output).open("a", encoding="utf-8") as handle:
            handle.write(f"{name}<<{delimiter}\n{value}\n{delimiter}\n")

    def append_step_summary(self, markdown: str) -> None:
        """Append markdown to the job's step summary."""
        if not self.context.step_summary:
            return
        with Path(self.context.step_summary).open("a", encoding="utf-8") as handle:
            handle.write(markdown.rstrip("\n") + "\n")
