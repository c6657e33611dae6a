"""Storage and network discovery for operator selection."""

import logging
from typing import List

from proxmoxer.core import ResourceException
from requests.exceptions import RequestException

from provisioner.exceptions import CatalogFetchError
from provisioner.models import NetworkEndpoint, ResourceCatalogSnapshot, StorageBackend
from provisioner.proxmox_api import Session, describe_api_error

logger = logging.getLogger(__name__)


class ResourceCatalog:
    """Enumerates storage backends and network attachment points.

    Names chosen by the operator are not checked against this catalog; the
    cluster rejects unknown storages or bridges at creation time.
    """

    def __init__(self, session: Session):
        self.session = session
        self.proxmox = session.api

    def list_storage(self) -> List[StorageBackend]:
        """List cluster-wide storage backends. Failure is fatal."""
        try:
            storages = self.proxmox.storage.get()
            return [StorageBackend.from_api(s) for s in storages]
        except (ResourceException, RequestException) as e:
            raise CatalogFetchError("Failed to list storage backends", describe_api_error(e))
        except (KeyError, TypeError, ValueError) as e:
            raise CatalogFetchError("Unexpected storage list response", repr(e))

    def list_bridges(self, node: str) -> List[NetworkEndpoint]:
        """List Linux/OVS bridges on the target node. Failure is fatal."""
        try:
            interfaces = self.proxmox.nodes(node).network.get(type="any_bridge")
            return [NetworkEndpoint.from_bridge(i) for i in interfaces]
        except (ResourceException, RequestException) as e:
            raise CatalogFetchError(f"Failed to list network bridges on {node}", describe_api_error(e))
        except (KeyError, TypeError) as e:
            raise CatalogFetchError(f"Unexpected network list response from {node}", repr(e))

    def list_vnets(self) -> List[NetworkEndpoint]:
        """List SDN virtual segments.

        Clusters without SDN configured answer with an error; that only
        degrades the catalog, so it is logged and an empty list returned.
        """
        try:
            vnets = self.proxmox.cluster.sdn.vnets.get()
            return [NetworkEndpoint.from_vnet(v) for v in vnets]
        except (ResourceException, RequestException, KeyError, TypeError) as e:
            logger.warning(f"SDN virtual segments unavailable, continuing without them: {describe_api_error(e)}")
            return []

    def snapshot(self, node: str) -> ResourceCatalogSnapshot:
        """Fetch storage and network endpoints visible from node."""
        storages = self.list_storage()
        bridges = self.list_bridges(node)
        vnets = self.list_vnets()
        logger.info(
            f"Catalog for {node}: {len(storages)} storage backends, "
            f"{len(bridges)} bridges, {len(vnets)} virtual segments"
        )
        return ResourceCatalogSnapshot(storages=storages, bridges=bridges, vnets=vnets)
