"""Custom exceptions for the VM provisioning workflow."""

from typing import Optional


class ProvisioningError(Exception):
    """Base exception for all provisioning errors."""

    def __init__(self, message: str, details: Optional[str] = None):
        """Initialize the exception.

        Args:
            message: Main error message
            details: Additional details, usually the cluster's own message
        """
        self.message = message
        self.details = details
        super().__init__(self.format_message())

    def format_message(self) -> str:
        """Format the complete error message.

        Returns:
            Formatted error message with details
        """
        if self.details:
            return f"{self.message}\n\nDetails: {self.details}"
        return self.message


class AuthenticationError(ProvisioningError):
    """Raised when no credentials are configured or the cluster rejects them."""

    pass


class ConnectivityError(ProvisioningError):
    """Raised when the API is unreachable or returns an unexpected shape."""

    pass


class NoActiveNodeError(ProvisioningError):
    """Raised when no cluster node reports an active local resource manager."""

    pass


class CatalogFetchError(ProvisioningError):
    """Raised when a mandatory part of the resource catalog cannot be fetched."""

    pass


class CreationRejectedError(ProvisioningError):
    """Raised when the cluster rejects the VM creation request."""

    pass


class PartialProvisioningError(ProvisioningError):
    """A stage failed after the VM was created; the VM is left in place."""

    def __init__(self, message: str, vmid: int, node: str, details: Optional[str] = None):
        self.vmid = vmid
        self.node = node
        super().__init__(message, details)


class HardeningRejectedError(PartialProvisioningError):
    """Raised when the EFI/TPM configuration update is rejected."""

    pass


class EnrollmentRejectedError(PartialProvisioningError):
    """Raised when HA resource registration is rejected."""

    pass


class IdentityReadbackError(ProvisioningError):
    """Raised when the VM configuration cannot be read back."""

    pass
