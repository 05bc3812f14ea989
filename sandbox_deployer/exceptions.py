"""
Deployer Exceptions

Error taxonomy for the sandbox deployment pipeline. Only
ConfigurationError is fatal for a run; the others are captured per chain
by the run coordinator.
"""


class DeployerError(Exception):
    """Base exception for sandbox deployer errors."""
    pass


class ConfigurationError(DeployerError):
    """Raised when run inputs are malformed or required fields are missing."""
    pass


class UnsupportedChainError(DeployerError):
    """Raised when no upstream RPC endpoint is configured for a chain."""

    def __init__(self, chain_id: int):
        super().__init__(f"No upstream RPC endpoints configured for chain {chain_id}")
        self.chain_id = chain_id


class UpstreamError(DeployerError):
    """Raised when an upstream JSON-RPC call fails or returns garbage."""
    pass


class ProvisioningError(DeployerError):
    """Raised when the sandbox provisioning service rejects a request."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class ReconciliationError(DeployerError):
    """Raised when a broadcast or build artifact cannot be read or parsed."""

    def __init__(self, path: str, reason: str):
        super().__init__(f"Failed to read artifact {path}: {reason}")
        self.path = path
        self.reason = reason


class NotificationError(DeployerError):
    """Delivery failure of a run notification. Never propagated to callers."""
    pass
