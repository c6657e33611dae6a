from dataclasses import dataclass
from typing import Any, Dict, Optional
import logging

from proxmoxer import ProxmoxAPI
from proxmoxer.core import ResourceException
from requests.exceptions import RequestException

from provisioner.config import Config, ConnectionSettings
from provisioner.exceptions import AuthenticationError, ConnectivityError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Session:
    """Authenticated handle on one cluster endpoint.

    Built once by ProxmoxClient.connect() and passed to every component.
    """

    host: str
    api: Any


def describe_api_error(exc: Exception) -> str:
    """Return the most useful human-readable message carried by an API error."""
    message = str(exc)
    content = getattr(exc, "content", None)
    if content and str(content) not in message:
        message = f"{message}: {content}"
    errors = getattr(exc, "errors", None)
    if errors and str(errors) not in message:
        message = f"{message} - {errors}"
    return message


def is_auth_failure(exc: Exception) -> bool:
    if isinstance(exc, ResourceException) and getattr(exc, "status_code", None) == 401:
        return True
    return "authenticat" in str(exc).lower()


class ProxmoxClient:
    """Builds the session used by every provisioning component."""

    def __init__(self, settings: Optional[ConnectionSettings] = None) -> None:
        self.settings = settings or Config.get_connection_settings()
        self.host = self.settings.host

    def _api_kwargs(self) -> Dict[str, Any]:
        kwargs: Dict[str, Any] = {"port": self.settings.port, "verify_ssl": self.settings.verify_ssl}
        if self.settings.uses_token:
            # Extract API token components
            try:
                user_token, token_value = self.settings.api_token.split("=", 1)  # type: ignore[union-attr]
                user, token_name = user_token.split("!", 1)
            except ValueError:
                raise AuthenticationError(
                    "Malformed API_TOKEN", "Expected the form user@realm!tokenid=secret"
                )
            kwargs.update(user=user, token_name=token_name, token_value=token_value)
        else:
            # proxmoxer exchanges these for a ticket cookie and CSRF prevention token
            kwargs.update(user=self.settings.user, password=self.settings.password)
        return kwargs

    def connect(self) -> Session:
        """Authenticate against the cluster and return an immutable session."""
        kwargs = self._api_kwargs()
        mode = "API token" if self.settings.uses_token else "ticket"
        logger.debug(f"Connecting to {self.host}:{self.settings.port} using {mode} authentication")
        if not self.settings.verify_ssl:
            logger.warning(f"TLS certificate verification is disabled for {self.host}")

        try:
            api = ProxmoxAPI(self.host, **kwargs)
        except (ResourceException, RequestException, Exception) as e:
            if is_auth_failure(e):
                raise AuthenticationError(f"Authentication to {self.host} was rejected", describe_api_error(e))
            raise ConnectivityError(f"Cannot reach Proxmox API at {self.host}", describe_api_error(e))

        return Session(host=self.host, api=api)

    @staticmethod
    def get_version(session: Session) -> Dict[str, Any]:
        """Probe the API version endpoint; doubles as a credential check."""
        try:
            version = session.api.version.get()
        except (ResourceException, RequestException) as e:
            if is_auth_failure(e):
                raise AuthenticationError(f"Authentication to {session.host} was rejected", describe_api_error(e))
            raise ConnectivityError(f"Version probe against {session.host} failed", describe_api_error(e))

        if not isinstance(version, dict) or "version" not in version:
            raise ConnectivityError(f"Unexpected version response from {session.host}", repr(version))
        logger.info(f"Connected to Proxmox VE {version['version']} at {session.host}")
        return version
