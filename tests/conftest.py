"""Shared test fixtures and configuration for provisioner tests."""

from typing import Any, Dict, List
from unittest import mock

import pytest

from provisioner.models import OSType, ProvisionRequest
from provisioner.proxmox_api import Session


@pytest.fixture
def ha_status_records() -> List[Dict[str, Any]]:
    """HA status table: pve1 idle, pve2 and pve3 active."""
    return [
        {"id": "quorum", "type": "quorum", "node": "pve1", "status": "OK", "quorate": 1},
        {"id": "master", "type": "master", "node": "pve1", "status": "pve1 (active, Tue Oct 14 09:12:01 2025)"},
        {"id": "lrm:pve1", "type": "lrm", "node": "pve1", "status": "pve1 (idle, Tue Oct 14 09:12:03 2025)"},
        {"id": "lrm:pve2", "type": "lrm", "node": "pve2", "status": "pve2 (active, Tue Oct 14 09:12:04 2025)"},
        {"id": "lrm:pve3", "type": "lrm", "node": "pve3", "status": "pve3 (active, Tue Oct 14 09:12:02 2025)"},
    ]


@pytest.fixture
def vm_config() -> Dict[str, Any]:
    """VM configuration as returned after provisioning."""
    return {
        "name": "web01",
        "memory": "8192",
        "cores": 4,
        "bios": "ovmf",
        "machine": "q35",
        "net0": "virtio=BC:24:11:2A:3B:4C,bridge=vmbr0",
        "virtio0": "local-lvm:vm-105-disk-1,format=qcow2,size=32G",
        "efidisk0": "local-lvm:vm-105-disk-0,efitype=4m,pre-enrolled-keys=1,size=4M",
        "tpmstate0": "local-lvm:vm-105-disk-2,size=4M,version=v2.0",
    }


@pytest.fixture
def mock_proxmox(ha_status_records, vm_config):
    """Mock proxmoxer API handle with a healthy three-node cluster."""
    proxmox = mock.MagicMock()

    proxmox.version.get.return_value = {"version": "8.2.4", "release": "8.2", "repoid": "faa83925c9641325"}
    proxmox.nodes.get.return_value = [
        {"node": "pve1", "status": "online"},
        {"node": "pve2", "status": "online"},
        {"node": "pve3", "status": "online"},
    ]
    proxmox.cluster.ha.status.current.get.return_value = ha_status_records
    proxmox.storage.get.return_value = [
        {"storage": "local", "type": "dir", "content": "iso,vztmpl,backup"},
        {"storage": "local-lvm", "type": "lvmthin", "content": "images,rootdir"},
        {"storage": "ceph-vm", "type": "rbd", "content": "images", "shared": 1},
    ]
    proxmox.nodes.return_value.network.get.return_value = [
        {"iface": "vmbr0", "type": "bridge", "comments": "LAN\n"},
        {"iface": "vmbr1", "type": "bridge"},
    ]
    proxmox.cluster.sdn.vnets.get.return_value = [
        {"vnet": "tenant1", "zone": "evpn1", "tag": 10100, "type": "vnet"},
    ]
    proxmox.cluster.nextid.get.return_value = "105"
    proxmox.nodes.return_value.qemu.post.return_value = "UPID:pve2:000A1B2C:0123ABCD:6710A1B2:qmcreate:105:root@pam:"
    proxmox.nodes.return_value.tasks.return_value.status.get.return_value = {"status": "stopped", "exitstatus": "OK"}
    proxmox.nodes.return_value.qemu.return_value.config.get.return_value = vm_config
    proxmox.nodes.return_value.qemu.return_value.status.current.get.return_value = {"status": "stopped", "vmid": 105}
    proxmox.cluster.ha.resources.get.return_value = []

    return proxmox


@pytest.fixture
def session(mock_proxmox) -> Session:
    """Session wrapping the mock API handle."""
    return Session(host="pve.example.com", api=mock_proxmox)


@pytest.fixture
def linux_request() -> ProvisionRequest:
    """Typical operator input for a Linux VM."""
    return ProvisionRequest(
        name="web01",
        os_type=OSType.LINUX,
        storage="local-lvm",
        disk_gb=32,
        memory_gb=8,
        cores=4,
        bridge="vmbr0",
    )


@pytest.fixture
def mock_env(monkeypatch):
    """Connection environment using API token authentication."""
    monkeypatch.delenv("PVE_USER", raising=False)
    monkeypatch.delenv("PVE_PASSWORD", raising=False)
    monkeypatch.delenv("PVE_PORT", raising=False)

    env_vars = {
        "PVE_HOST": "pve.example.com",
        "API_TOKEN": "root@pam!provision=8f0a4c2e-5b7d-4a3e-9f21-6d2c1b0e7a55",
        "PVE_VERIFY_SSL": "false",
    }
    for key, value in env_vars.items():
        monkeypatch.setenv(key, value)

    return env_vars
