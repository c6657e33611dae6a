#!/usr/bin/env python3
"""
Proxmox VE VM provisioning CLI.

    pve-provision provision     # Create, harden and HA-enroll one VM
    pve-provision nodes         # Show nodes and which one would be selected
    pve-provision catalog       # Show storage and network endpoints
    pve-provision version       # Check connectivity and credentials

Connection settings come from the environment or a .env file
(PVE_HOST, API_TOKEN or PVE_USER/PVE_PASSWORD, PVE_VERIFY_SSL).
"""

import logging
from typing import Optional

import click
import typer
from rich.console import Console
from rich.table import Table

from provisioner.cluster_inspector import ClusterInspector
from provisioner.exceptions import PartialProvisioningError, ProvisioningError
from provisioner.models import OSType, ProvisionRequest, ProvisionResult, ResourceCatalogSnapshot
from provisioner.proxmox_api import ProxmoxClient, Session
from provisioner.workflow import ProvisioningWorkflow

# Initialize CLI app and console
app = typer.Typer(
    name="pve-provision",
    help="Provision hardened, HA-managed VMs on a Proxmox VE cluster",
    add_completion=False
)
console = Console()

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)8s] %(name)s: %(message)s"
)
logger = logging.getLogger(__name__)


@app.callback()
def main(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging")
) -> None:
    """Provision hardened, HA-managed VMs on a Proxmox VE cluster."""
    if verbose:
        logging.getLogger().setLevel(logging.DEBUG)


def report_error(e: ProvisioningError) -> None:
    console.print(f"❌ {e.message}")
    if e.details:
        console.print(f"   {e.details}")


def get_session() -> Session:
    """Connect and run the version preflight once."""
    try:
        client = ProxmoxClient()
        session = client.connect()
        version = ProxmoxClient.get_version(session)
    except ProvisioningError as e:
        report_error(e)
        raise typer.Exit(1)

    console.print(f"🔗 Connected to {session.host} (Proxmox VE {version['version']})")
    return session


def show_catalog(node: str, catalog: ResourceCatalogSnapshot) -> None:
    storage_table = Table(title="Storage backends")
    storage_table.add_column("Name", style="cyan")
    storage_table.add_column("Type", style="blue")
    storage_table.add_column("Content", style="green")
    storage_table.add_column("Shared", style="yellow")
    for storage in catalog.storages:
        storage_table.add_row(storage.name, storage.type, ",".join(storage.content), "yes" if storage.shared else "no")
    console.print(storage_table)

    network_table = Table(title=f"Network endpoints on {node}")
    network_table.add_column("Kind", style="cyan")
    network_table.add_column("Name", style="blue")
    network_table.add_column("Description", style="green")
    for endpoint in catalog.endpoints:
        network_table.add_row(endpoint.kind.value, endpoint.name, endpoint.description)
    console.print(network_table)

    if not catalog.vnets:
        console.print("⚠️  No SDN virtual segments available")


def show_result(result: ProvisionResult) -> None:
    table = Table(title="Provisioned VM")
    table.add_column("Property", style="cyan")
    table.add_column("Value", style="green")
    table.add_row("VMID", str(result.vmid))
    table.add_row("Name", result.name)
    table.add_row("Node", result.node)
    table.add_row("MAC address", result.mac_address)
    table.add_row("HA resource", result.ha_sid)
    console.print(table)


def report_partial_failure(workflow: ProvisioningWorkflow, e: PartialProvisioningError) -> None:
    """Tell the operator what was left behind on the cluster."""
    report_error(e)
    try:
        exists = workflow.provisioner.vm_exists(e.node, e.vmid)
        registered = any(r.get("sid") == f"vm:{e.vmid}" for r in workflow.provisioner.list_ha_resources())
    except ProvisioningError as inner:
        console.print(f"⚠️  Could not inspect VM {e.vmid}: {inner.message}")
        return

    state = "still exists" if exists else "was not found"
    console.print(f"⚠️  VM {e.vmid} {state} on {e.node} (HA registered: {'yes' if registered else 'no'})")
    console.print("   Inspect the cluster and clean up manually; nothing was rolled back.")


def prompt_request(
    name: Optional[str],
    os_flag: Optional[str],
    storage: Optional[str],
    disk_gb: Optional[int],
    memory_gb: Optional[int],
    cores: Optional[int],
    bridge: Optional[str],
) -> ProvisionRequest:
    """Fill in any parameter not given on the command line."""
    name = name or typer.prompt("VM name")
    os_flag = os_flag or typer.prompt("OS family (Windows/Linux)", default="Linux")
    storage = storage or typer.prompt("Storage")
    disk_gb = disk_gb or typer.prompt("Disk size (GB)", type=click.IntRange(min=1))
    memory_gb = memory_gb or typer.prompt("RAM (GB)", type=click.IntRange(min=1))
    cores = cores or typer.prompt("CPU cores", type=click.IntRange(min=1))
    bridge = bridge or typer.prompt("Network bridge")

    try:
        os_type = OSType.from_flag(os_flag)
    except ValueError as e:
        console.print(f"❌ {e}")
        raise typer.Exit(1)

    return ProvisionRequest(
        name=name,
        os_type=os_type,
        storage=storage,
        disk_gb=disk_gb,
        memory_gb=memory_gb,
        cores=cores,
        bridge=bridge,
    )


@app.command("provision")
def provision_vm(
    name: Optional[str] = typer.Option(None, "--name", "-n", help="VM name"),
    os_flag: Optional[str] = typer.Option(None, "--os", help="OS family: Windows or Linux"),
    storage: Optional[str] = typer.Option(None, "--storage", "-s", help="Storage for disk, EFI and TPM"),
    disk_gb: Optional[int] = typer.Option(None, "--disk-gb", min=1, help="Disk size in GB"),
    memory_gb: Optional[int] = typer.Option(None, "--memory-gb", min=1, help="RAM in GB"),
    cores: Optional[int] = typer.Option(None, "--cores", min=1, help="CPU cores"),
    bridge: Optional[str] = typer.Option(None, "--bridge", "-b", help="Network bridge or vnet"),
    yes: bool = typer.Option(False, "--yes", "-y", help="Skip the confirmation prompt"),
) -> None:
    """
    Provision one VM: pick an active node, allocate a VMID, create the VM
    with UEFI/TPM hardening and enroll it in HA.
    """
    session = get_session()
    workflow = ProvisioningWorkflow(session)

    try:
        discovery = workflow.discover()
    except ProvisioningError as e:
        report_error(e)
        raise typer.Exit(1)

    console.print(f"🎯 Target node: {discovery.node}")
    show_catalog(discovery.node, discovery.catalog)

    request = prompt_request(name, os_flag, storage, disk_gb, memory_gb, cores, bridge)

    console.print(
        f"\n🆕 {request.name!r} on {discovery.node}: {request.os_type.name.title()}, "
        f"{request.cores} cores, {request.memory_gb}GB RAM, "
        f"{request.disk_gb}GB on {request.storage}, bridge {request.bridge}"
    )
    if not yes and not typer.confirm("Create this VM?"):
        console.print("Aborted.")
        raise typer.Exit(1)

    try:
        result = workflow.provision(request)
    except PartialProvisioningError as e:
        report_partial_failure(workflow, e)
        raise typer.Exit(1)
    except ProvisioningError as e:
        report_error(e)
        raise typer.Exit(1)

    show_result(result)
    console.print("\n✅ Provisioning complete")


@app.command("nodes")
def show_nodes() -> None:
    """Show cluster nodes, their HA status, and the node that would be selected."""
    session = get_session()
    inspector = ClusterInspector(session)

    try:
        nodes = inspector.list_nodes()
        records = inspector.get_ha_status()
    except ProvisioningError as e:
        report_error(e)
        raise typer.Exit(1)

    selected = next(inspector.active_nodes(nodes, records), None)

    table = Table(title="Cluster nodes")
    table.add_column("Node", style="cyan")
    table.add_column("Status", style="blue")
    table.add_column("HA active", style="bold")
    table.add_column("Selected", style="green")
    for node in nodes:
        active = inspector.node_is_active(node, records)
        table.add_row(
            node.name,
            node.status,
            "✅" if active else "❌",
            "⭐" if selected is not None and node.name == selected.name else "",
        )
    console.print(table)

    if selected is None:
        console.print("❌ No node has an active HA local resource manager")
        raise typer.Exit(1)


@app.command("catalog")
def show_resources() -> None:
    """Show storage backends and network endpoints on the selected node."""
    session = get_session()
    workflow = ProvisioningWorkflow(session)

    try:
        discovery = workflow.discover()
    except ProvisioningError as e:
        report_error(e)
        raise typer.Exit(1)

    console.print(f"🎯 Target node: {discovery.node}")
    show_catalog(discovery.node, discovery.catalog)


@app.command("version")
def show_version() -> None:
    """Check connectivity and credentials against the version endpoint."""
    get_session()


if __name__ == "__main__":
    app()
