#!/usr/bin/env python3
"""
Create, harden and HA-enroll a single QEMU VM on a chosen node.

Stages run strictly in order and none is retried:

    S0 translate operator inputs into a VMSpec
    S1 create the VM (UEFI, q35, virtio disk/NIC, RNG)
    S2 add EFI vars and TPM 2.0 state disks
    S3 register the VM as an HA resource
    S4 read back the NIC's MAC address (informational, never fatal)

A failure after S1 leaves the VM on the cluster; nothing is rolled back.
"""

import logging
import re
import time
from typing import Any, Dict, List, Optional

from proxmoxer.core import ResourceException
from requests.exceptions import RequestException

from provisioner.config import Config
from provisioner.exceptions import (
    ConnectivityError,
    CreationRejectedError,
    EnrollmentRejectedError,
    HardeningRejectedError,
    IdentityReadbackError,
)
from provisioner.models import (
    MAC_NOT_GENERATED,
    MAC_READ_ERROR,
    DiskSpec,
    HAEnrollment,
    NetSpec,
    ProvisionRequest,
    ProvisionResult,
    SecurityConfig,
    VMSpec,
)
from provisioner.proxmox_api import Session, describe_api_error

logger = logging.getLogger(__name__)

MAC_PATTERN = re.compile(r"(?:[0-9A-Fa-f]{2}[:-]){5}[0-9A-Fa-f]{2}")


def parse_descriptor(descriptor: str) -> Dict[str, str]:
    """Split a Proxmox property string ("virtio=AA:..,bridge=vmbr0,firewall=1") into a dict.

    Items without "=" are kept with an empty value.
    """
    result: Dict[str, str] = {}
    for item in descriptor.split(","):
        item = item.strip()
        if not item:
            continue
        key, _, value = item.partition("=")
        result[key.strip()] = value.strip()
    return result


def extract_mac_address(descriptor: Optional[str]) -> Optional[str]:
    """Return the first value of a NIC descriptor that is a six-octet hardware address, or None.

    The address sits under the model key ("virtio=...") or under "macaddr".
    """
    if not descriptor:
        return None
    for value in parse_descriptor(descriptor).values():
        if MAC_PATTERN.fullmatch(value):
            return value
    return None


def memory_gb_to_mb(memory_gb: int) -> int:
    return memory_gb * 1024


class VMProvisioner:
    """Runs the create/harden/enroll/readback sequence for one VM."""

    def __init__(self, session: Session):
        """Initialize VM provisioner.

        Args:
            session: Authenticated cluster session
        """
        self.session = session
        self.proxmox = session.api

    @staticmethod
    def build_vm_spec(vmid: int, node: str, request: ProvisionRequest) -> VMSpec:
        """S0: translate operator inputs into the creation request."""
        return VMSpec(
            vmid=vmid,
            name=request.name,
            node=node,
            ostype=request.os_type,
            memory_mb=memory_gb_to_mb(request.memory_gb),
            cores=request.cores,
            disk=DiskSpec(storage=request.storage, size_gb=request.disk_gb),
            net=NetSpec(bridge=request.bridge),
            pool=Config.VM_POOL,
        )

    def wait_for_task(self, node: str, upid: str) -> Dict[str, Any]:
        """Poll a task until it stops; return its final status.

        Raises:
            ConnectivityError: If the task is still running after TASK_TIMEOUT seconds
        """
        deadline = time.time() + Config.TASK_TIMEOUT
        while True:
            status = self.proxmox.nodes(node).tasks(upid).status.get()
            if status.get("status") == "stopped":
                return status  # type: ignore[no-any-return]
            if time.time() >= deadline:
                raise ConnectivityError(f"Task {upid} on {node} did not finish in {Config.TASK_TIMEOUT}s")
            time.sleep(Config.TASK_POLL_INTERVAL)

    def create_vm(self, spec: VMSpec) -> None:
        """S1: submit the creation request and wait for the create task."""
        params = spec.to_create_params()
        logger.info(f"Creating VM {spec.name!r} (vmid={spec.vmid}) on {spec.node}")
        logger.debug(f"Create parameters: {params}")

        try:
            upid = self.proxmox.nodes(spec.node).qemu.post(**params)
        except (ResourceException, RequestException) as e:
            raise CreationRejectedError(f"Cluster rejected creation of VM {spec.vmid}", describe_api_error(e))

        if isinstance(upid, str) and upid.startswith("UPID:"):
            try:
                status = self.wait_for_task(spec.node, upid)
            except (ResourceException, RequestException) as e:
                raise ConnectivityError(f"Lost track of create task for VM {spec.vmid}", describe_api_error(e))
            if status.get("exitstatus") != "OK":
                raise CreationRejectedError(
                    f"Create task for VM {spec.vmid} failed", str(status.get("exitstatus", "unknown error"))
                )

    def apply_security(self, node: str, vmid: int, storage: str) -> SecurityConfig:
        """S2: add the EFI vars disk and TPM state disk."""
        security = SecurityConfig(storage=storage)
        logger.info(f"Applying UEFI/TPM hardening to VM {vmid}")
        try:
            self.proxmox.nodes(node).qemu(vmid).config.post(**security.to_config_params())
        except (ResourceException, RequestException) as e:
            raise HardeningRejectedError(
                f"VM {vmid} was created but EFI/TPM hardening failed; the VM was left in place",
                vmid=vmid,
                node=node,
                details=describe_api_error(e),
            )
        return security

    def enroll_ha(self, node: str, vmid: int) -> HAEnrollment:
        """S3: register the VM as an HA resource."""
        enrollment = HAEnrollment(vmid=vmid, comment=Config.HA_COMMENT)
        logger.info(f"Registering HA resource {enrollment.sid}")
        try:
            self.proxmox.cluster.ha.resources.post(**enrollment.to_params())
        except (ResourceException, RequestException) as e:
            raise EnrollmentRejectedError(
                f"VM {vmid} was created and hardened but HA enrollment failed; the VM was left in place",
                vmid=vmid,
                node=node,
                details=describe_api_error(e),
            )
        return enrollment

    def get_vm_config(self, node: str, vmid: int) -> Dict[str, Any]:
        try:
            config = self.proxmox.nodes(node).qemu(vmid).config.get()
        except (ResourceException, RequestException) as e:
            raise IdentityReadbackError(f"Failed to read configuration of VM {vmid}", describe_api_error(e))
        if not isinstance(config, dict):
            raise IdentityReadbackError(f"Unexpected configuration response for VM {vmid}", repr(config))
        return config

    def read_mac_address(self, node: str, vmid: int) -> str:
        """S4: return net0's MAC address, or a sentinel. Never raises."""
        try:
            config = self.get_vm_config(node, vmid)
        except IdentityReadbackError as e:
            logger.warning(str(e))
            return MAC_READ_ERROR

        mac = extract_mac_address(config.get("net0"))
        if mac is None:
            logger.warning(f"No MAC address found in net0 of VM {vmid}")
            return MAC_NOT_GENERATED
        return mac

    def vm_exists(self, node: str, vmid: int) -> bool:
        """Whether the cluster still knows about vmid on node."""
        try:
            self.proxmox.nodes(node).qemu(vmid).status.current.get()
            return True
        except ResourceException as e:
            if getattr(e, "status_code", None) == 500 and "does not exist" in describe_api_error(e):
                return False
            raise ConnectivityError(f"Failed to query VM {vmid} on {node}", describe_api_error(e))
        except RequestException as e:
            raise ConnectivityError(f"Failed to query VM {vmid} on {node}", describe_api_error(e))

    def list_ha_resources(self) -> List[Dict[str, Any]]:
        """Return all registered HA resources."""
        try:
            return self.proxmox.cluster.ha.resources.get()  # type: ignore[no-any-return]
        except (ResourceException, RequestException) as e:
            raise ConnectivityError("Failed to list HA resources", describe_api_error(e))

    def provision(self, vmid: int, node: str, request: ProvisionRequest) -> ProvisionResult:
        """Run S0 through S4 for one VM on node."""
        spec = self.build_vm_spec(vmid, node, request)
        self.create_vm(spec)
        self.apply_security(node, vmid, request.storage)
        enrollment = self.enroll_ha(node, vmid)
        mac = self.read_mac_address(node, vmid)

        logger.info(f"VM {spec.name!r} (vmid={vmid}) provisioned on {node}, MAC {mac}")
        return ProvisionResult(vmid=vmid, name=spec.name, node=node, mac_address=mac, ha_sid=enrollment.sid)
