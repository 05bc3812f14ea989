"""
Deployment Execution

Running the deployment command and reconciling the artifacts it leaves
behind.
"""

from sandbox_deployer.deploy.artifacts import (
    FileEntry,
    load_event_abis,
    reconcile,
    walk_files,
)
from sandbox_deployer.deploy.decoder import EventDecoder
from sandbox_deployer.deploy.runner import DeploymentRunner

__all__ = [
    "DeploymentRunner",
    "EventDecoder",
    "FileEntry",
    "load_event_abis",
    "reconcile",
    "walk_files",
]
