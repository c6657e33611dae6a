"""Data models for cluster discovery and VM provisioning."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

# Snapshot-capable format used for every disk this tool creates
DISK_FORMAT = "qcow2"

MAC_NOT_GENERATED = "not generated"
MAC_READ_ERROR = "read error"


class OSType(Enum):
    """Operator-facing OS family, mapped to the Proxmox ostype tag."""

    WINDOWS = "win11"
    LINUX = "l26"

    @classmethod
    def from_flag(cls, flag: str) -> "OSType":
        """Map an operator answer ("Windows"/"Linux", any case, or w/l) to an OSType."""
        value = flag.strip().lower()
        if value in ("windows", "win", "w"):
            return cls.WINDOWS
        if value in ("linux", "l"):
            return cls.LINUX
        raise ValueError(f"Unknown OS family: {flag!r} (expected Windows or Linux)")


class EndpointKind(Enum):
    """Kind of network attachment point."""

    BRIDGE = "Bridge"
    VNET = "Virtual Segment"


@dataclass
class ClusterNode:
    """A compute host in the cluster."""

    name: str
    status: str = "unknown"

    @classmethod
    def from_api(cls, data: Dict[str, Any]) -> "ClusterNode":
        return cls(name=data["node"], status=data.get("status", "unknown"))


@dataclass
class HAStatusRecord:
    """One row of /cluster/ha/status/current."""

    type: str
    node: Optional[str] = None
    status: str = ""
    id: str = ""

    @classmethod
    def from_api(cls, data: Dict[str, Any]) -> "HAStatusRecord":
        return cls(
            type=data.get("type", ""),
            node=data.get("node"),
            status=data.get("status", ""),
            id=data.get("id", ""),
        )

    @property
    def is_lrm(self) -> bool:
        return self.type == "lrm"

    @property
    def is_active(self) -> bool:
        return "active" in self.status


@dataclass
class StorageBackend:
    """A place disks may be created."""

    name: str
    type: str
    content: List[str] = field(default_factory=list)
    shared: bool = False

    @classmethod
    def from_api(cls, data: Dict[str, Any]) -> "StorageBackend":
        content = [c.strip() for c in data.get("content", "").split(",") if c.strip()]
        return cls(
            name=data["storage"],
            type=data.get("type", ""),
            content=content,
            shared=bool(int(data.get("shared", 0))),
        )


@dataclass
class NetworkEndpoint:
    """A physical bridge or SDN virtual segment a NIC can attach to."""

    kind: EndpointKind
    name: str
    description: str = ""

    @classmethod
    def from_bridge(cls, data: Dict[str, Any]) -> "NetworkEndpoint":
        return cls(kind=EndpointKind.BRIDGE, name=data["iface"], description=data.get("comments", "").strip())

    @classmethod
    def from_vnet(cls, data: Dict[str, Any]) -> "NetworkEndpoint":
        parts = [f"zone={data['zone']}"] if data.get("zone") else []
        if data.get("tag") is not None:
            parts.append(f"tag={data['tag']}")
        if data.get("alias"):
            parts.append(data["alias"])
        return cls(kind=EndpointKind.VNET, name=data["vnet"], description=", ".join(parts))


@dataclass
class ResourceCatalogSnapshot:
    """Storage and network endpoints visible from the target node."""

    storages: List[StorageBackend] = field(default_factory=list)
    bridges: List[NetworkEndpoint] = field(default_factory=list)
    vnets: List[NetworkEndpoint] = field(default_factory=list)

    @property
    def endpoints(self) -> List[NetworkEndpoint]:
        return self.bridges + self.vnets


@dataclass
class ProvisionRequest:
    """Operator-supplied VM parameters."""

    name: str
    os_type: OSType
    storage: str
    disk_gb: int
    memory_gb: int
    cores: int
    bridge: str


@dataclass
class DiskSpec:
    """Primary disk, always created in DISK_FORMAT."""

    storage: str
    size_gb: int
    bus: str = "virtio0"

    def descriptor(self) -> str:
        return f"{self.storage}:{self.size_gb},format={DISK_FORMAT}"


@dataclass
class NetSpec:
    """Paravirtualized NIC bound to a bridge."""

    bridge: str
    model: str = "virtio"

    def descriptor(self) -> str:
        return f"{self.model},bridge={self.bridge}"


@dataclass
class VMSpec:
    """The VM under construction, as submitted to POST /nodes/{node}/qemu."""

    vmid: int
    name: str
    node: str
    ostype: OSType
    memory_mb: int
    cores: int
    disk: DiskSpec
    net: NetSpec
    pool: str = "CUST"
    sockets: int = 1
    cpu: str = "host"
    machine: str = "q35"
    bios: str = "ovmf"
    scsihw: str = "virtio-scsi-pci"
    agent: bool = True
    cdrom: str = "none,media=cdrom"
    rng: str = "source=/dev/urandom"

    def to_create_params(self) -> Dict[str, Any]:
        return {
            "vmid": self.vmid,
            "name": self.name,
            "pool": self.pool,
            "ostype": self.ostype.value,
            "memory": self.memory_mb,
            "cores": self.cores,
            "sockets": self.sockets,
            "cpu": self.cpu,
            "machine": self.machine,
            "bios": self.bios,
            "scsihw": self.scsihw,
            "agent": 1 if self.agent else 0,
            "ide2": self.cdrom,
            "net0": self.net.descriptor(),
            self.disk.bus: self.disk.descriptor(),
            "rng0": self.rng,
        }


@dataclass
class SecurityConfig:
    """EFI vars disk and TPM state disk added after creation."""

    storage: str
    efi_size: int = 4
    efitype: str = "4m"
    pre_enrolled_keys: bool = True
    ms_cert: str = "2023"
    tpm_size: int = 4
    tpm_version: str = "v2.0"

    def efidisk_descriptor(self) -> str:
        return (
            f"{self.storage}:{self.efi_size},efitype={self.efitype},"
            f"pre-enrolled-keys={1 if self.pre_enrolled_keys else 0},"
            f"ms-cert={self.ms_cert},format={DISK_FORMAT}"
        )

    def tpmstate_descriptor(self) -> str:
        return f"{self.storage}:{self.tpm_size},version={self.tpm_version},format={DISK_FORMAT}"

    def to_config_params(self) -> Dict[str, str]:
        return {"efidisk0": self.efidisk_descriptor(), "tpmstate0": self.tpmstate_descriptor()}


@dataclass
class HAEnrollment:
    """HA resource registration for a VM."""

    vmid: int
    state: str = "started"
    comment: str = ""

    @property
    def sid(self) -> str:
        return f"vm:{self.vmid}"

    def to_params(self) -> Dict[str, Any]:
        params: Dict[str, Any] = {"sid": self.sid, "state": self.state}
        if self.comment:
            params["comment"] = self.comment
        return params


@dataclass
class ProvisionResult:
    """Outcome of a successful provisioning run."""

    vmid: int
    name: str
    node: str
    mac_address: str
    ha_sid: str
