"""Abstract base class for cloud providers."""

from abc import ABC, abstractmethod
from typing import Any

from scanplane.models.model_scan import CloudProvider, ScanJobConfig, VMInfo


class Provider(ABC):
    """Cloud provider able to discover targets and host scanner VMs.

    run_target_scan and remove_target_scan are idempotent steps: they either
    succeed, raise RetryableError to be called again later, or raise
    FatalError. Drive them with provider.poller.poll_until_done.
    """

    @abstractmethod
    def kind(self) -> CloudProvider:
        """Return the cloud this provider manages."""
        ...

    @abstractmethod
    async def discover_scopes(self) -> Any:
        """Discover the scopes (accounts, resource groups, ...) available for scanning."""
        ...

    @abstractmethod
    async def discover_targets(self, scope: Any) -> list[VMInfo]:
        """Discover scan targets within a scope."""
        ...

    @abstractmethod
    async def run_target_scan(self, config: ScanJobConfig) -> Any:
        """Ensure the scanner resources for a job exist and are ready."""
        ...

    @abstractmethod
    async def remove_target_scan(self, config: ScanJobConfig) -> None:
        """Ensure the scanner resources for a job are deleted."""
        ...
