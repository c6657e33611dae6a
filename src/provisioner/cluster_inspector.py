"""Target node selection from cluster membership and HA runtime status."""

import logging
from typing import Iterable, Iterator, List, Optional

from proxmoxer.core import ResourceException
from requests.exceptions import RequestException

from provisioner.exceptions import ConnectivityError, NoActiveNodeError
from provisioner.models import ClusterNode, HAStatusRecord
from provisioner.proxmox_api import Session, describe_api_error

logger = logging.getLogger(__name__)


class ClusterInspector:
    """Pick the node a new VM will be created on."""

    def __init__(self, session: Session):
        """Initialize cluster inspector.

        Args:
            session: Authenticated cluster session
        """
        self.session = session
        self.proxmox = session.api

    def list_nodes(self) -> List[ClusterNode]:
        """Return cluster members in the order the API reports them."""
        try:
            nodes = self.proxmox.nodes.get()
        except (ResourceException, RequestException) as e:
            raise ConnectivityError("Failed to list cluster nodes", describe_api_error(e))
        try:
            return [ClusterNode.from_api(n) for n in nodes]
        except (KeyError, TypeError) as e:
            raise ConnectivityError("Unexpected node list response", repr(e))

    def get_ha_status(self) -> List[HAStatusRecord]:
        """Return every record of the current HA runtime status table."""
        try:
            records = self.proxmox.cluster.ha.status.current.get()
        except (ResourceException, RequestException) as e:
            raise ConnectivityError("Failed to fetch HA status", describe_api_error(e))
        try:
            return [HAStatusRecord.from_api(r) for r in records]
        except (AttributeError, TypeError) as e:
            raise ConnectivityError("Unexpected HA status response", repr(e))

    @staticmethod
    def node_is_active(node: ClusterNode, records: Iterable[HAStatusRecord]) -> bool:
        """A node is active when its LRM record's status mentions "active".

        Nodes without an LRM record are treated as not active.
        """
        for record in records:
            if record.is_lrm and record.node == node.name:
                return record.is_active
        return False

    @staticmethod
    def active_nodes(nodes: Iterable[ClusterNode], records: List[HAStatusRecord]) -> Iterator[ClusterNode]:
        """Lazily yield active nodes, preserving input order."""
        for node in nodes:
            if ClusterInspector.node_is_active(node, records):
                yield node
            else:
                logger.debug(f"Skipping node {node.name}: local resource manager not active")

    def select_active_node(self) -> str:
        """Return the name of the first node with an active local resource manager.

        Raises:
            NoActiveNodeError: If the cluster has no nodes or none is active
            ConnectivityError: If membership or HA status cannot be fetched
        """
        nodes = self.list_nodes()
        if not nodes:
            raise NoActiveNodeError("Cluster reported no nodes")

        records = self.get_ha_status()
        selected: Optional[ClusterNode] = next(self.active_nodes(nodes, records), None)
        if selected is None:
            raise NoActiveNodeError(
                "No cluster node has an active HA local resource manager",
                f"Checked: {', '.join(n.name for n in nodes)}",
            )

        logger.info(f"Selected target node {selected.name}")
        return selected.name
