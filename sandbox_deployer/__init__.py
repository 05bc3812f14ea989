"""
Sandbox Deployer

Provisions forked blockchain sandbox nodes for CI runs, executes a
deployment command against each one and reconciles the resulting
broadcast artifacts into an ordered per-chain summary.
"""

__version__ = "1.0.0"
