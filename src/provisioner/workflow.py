"""End-to-end provisioning run: inspect, catalog, allocate, provision."""

import logging
from dataclasses import dataclass, field
from typing import Optional

from provisioner.cluster_inspector import ClusterInspector
from provisioner.id_allocator import IdentifierAllocator
from provisioner.models import ProvisionRequest, ProvisionResult, ResourceCatalogSnapshot
from provisioner.proxmox_api import Session
from provisioner.resource_catalog import ResourceCatalog
from provisioner.vm_provisioner import VMProvisioner

logger = logging.getLogger(__name__)


@dataclass
class Discovery:
    """Target node and catalog, resolved once per run."""

    node: str
    catalog: ResourceCatalogSnapshot = field(default_factory=ResourceCatalogSnapshot)


class ProvisioningWorkflow:
    """Drives the components in order for a single VM.

    The target node is resolved by discover() and stored; provision() never
    re-resolves it.
    """

    def __init__(self, session: Session):
        self.session = session
        self.inspector = ClusterInspector(session)
        self.catalog = ResourceCatalog(session)
        self.allocator = IdentifierAllocator(session)
        self.provisioner = VMProvisioner(session)
        self.discovery: Optional[Discovery] = None

    def discover(self) -> Discovery:
        """Phase 1-2: select the target node and enumerate its resources."""
        if self.discovery is None:
            node = self.inspector.select_active_node()
            self.discovery = Discovery(node=node, catalog=self.catalog.snapshot(node))
        return self.discovery

    def provision(self, request: ProvisionRequest) -> ProvisionResult:
        """Phase 3-4: allocate a VMID right before creation, then run S0-S4."""
        discovery = self.discover()
        vmid = self.allocator.next_vmid()
        return self.provisioner.provision(vmid, discovery.node, request)
