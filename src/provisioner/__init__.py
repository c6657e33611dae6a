"""Provision hardened, HA-managed VMs on a Proxmox VE cluster."""

__version__ = "0.1.0"
