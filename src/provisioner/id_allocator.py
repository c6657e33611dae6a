"""Cluster-unique VM identifier allocation."""

import logging
from typing import Set

from proxmoxer.core import ResourceException
from requests.exceptions import RequestException

from provisioner.exceptions import ConnectivityError
from provisioner.proxmox_api import Session, describe_api_error

logger = logging.getLogger(__name__)


class IdentifierAllocator:
    """Asks the cluster for the next free VMID.

    Nothing is reserved: another allocator racing this one can receive the
    same id, and the cluster rejects whichever create call comes second.
    """

    def __init__(self, session: Session):
        self.proxmox = session.api
        self.issued: Set[int] = set()

    def next_vmid(self) -> int:
        """Return the next free VMID reported by /cluster/nextid."""
        try:
            raw = self.proxmox.cluster.nextid.get()
        except (ResourceException, RequestException) as e:
            raise ConnectivityError("Failed to allocate a VM identifier", describe_api_error(e))

        try:
            vmid = int(raw)
        except (TypeError, ValueError):
            raise ConnectivityError("Unexpected VM identifier response", repr(raw))

        if vmid in self.issued:
            raise ConnectivityError(f"Cluster returned VMID {vmid} twice in one run")
        self.issued.add(vmid)

        logger.info(f"Allocated VMID {vmid}")
        return vmid
