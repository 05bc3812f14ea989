"""
Sandbox Lifecycle

Provisioning of forked sandbox nodes and liveness polling.
"""

from sandbox_deployer.sandbox.liveness import await_liveness, is_live_response
from sandbox_deployer.sandbox.provisioner import SandboxProvisioner, make_sandbox_id

__all__ = [
    "SandboxProvisioner",
    "make_sandbox_id",
    "await_liveness",
    "is_live_response",
]
