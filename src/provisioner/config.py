import os
from dataclasses import dataclass
from typing import Optional

from dotenv import load_dotenv

from provisioner.exceptions import AuthenticationError


@dataclass(frozen=True)
class ConnectionSettings:
    """Endpoint and credentials for one Proxmox VE cluster."""

    host: str
    port: int = 8006
    verify_ssl: bool = False
    api_token: Optional[str] = None
    user: Optional[str] = None
    password: Optional[str] = None

    @property
    def uses_token(self) -> bool:
        return self.api_token is not None


def _as_bool(value: str) -> bool:
    return value.strip().lower() in ("1", "true", "yes", "on")


class Config:
    """Loads and manages configuration from environment variables."""

    load_dotenv()

    VM_POOL = os.getenv("VM_POOL", "CUST")
    HA_COMMENT = os.getenv("HA_COMMENT", "Provisioned by pve-provisioner")
    TASK_TIMEOUT = int(os.getenv("TASK_TIMEOUT", "300"))
    TASK_POLL_INTERVAL = float(os.getenv("TASK_POLL_INTERVAL", "2"))

    @staticmethod
    def get_connection_settings() -> ConnectionSettings:
        """Read the cluster endpoint and credentials from the environment.

        API_TOKEN takes precedence over PVE_USER/PVE_PASSWORD.

        Raises:
            AuthenticationError: If PVE_HOST is unset or neither credential mode is configured
        """
        host = os.getenv("PVE_HOST", "").strip()
        if not host:
            raise AuthenticationError("PVE_HOST environment variable is not set")

        api_token = os.getenv("API_TOKEN") or None
        user = os.getenv("PVE_USER") or None
        password = os.getenv("PVE_PASSWORD") or None

        if api_token is None and not (user and password):
            raise AuthenticationError(
                "No credentials configured",
                "Set API_TOKEN (user@realm!tokenid=secret) or both PVE_USER and PVE_PASSWORD.",
            )

        return ConnectionSettings(
            host=host,
            port=int(os.getenv("PVE_PORT", "8006")),
            verify_ssl=_as_bool(os.getenv("PVE_VERIFY_SSL", "false")),
            api_token=api_token,
            user=user,
            password=password,
        )
