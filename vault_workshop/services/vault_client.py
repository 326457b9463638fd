"""Thin hvac wrapper exposing the Vault primitives the workshop relies on."""
from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Any, Callable, Dict, Iterator, List, Optional

import hvac
import requests
from hvac import exceptions as hvac_exceptions

from ..config import VaultConfig
from ..errors import RemoteUnavailableError, VaultRequestError

LOGGER = logging.getLogger(__name__)


@contextmanager
def vault_errors(action: str) -> Iterator[None]:
    """Translate hvac and transport failures into workshop errors."""

    try:
        yield
    except (requests.exceptions.ConnectionError, requests.exceptions.Timeout) as exc:
        raise RemoteUnavailableError(
            f"{action}: Vault is unreachable ({exc})",
            remediation="Check WORKSHOP_VAULT__ADDRESS and network access, then run: vault-workshop preflight",
        ) from exc
    except (hvac_exceptions.VaultDown, hvac_exceptions.Unauthorized) as exc:
        raise RemoteUnavailableError(
            f"{action}: {exc}",
            remediation="Check that Vault is unsealed and the admin token is valid: vault-workshop preflight",
        ) from exc
    except hvac_exceptions.VaultError as exc:
        raise VaultRequestError(action, exc) from exc


def _payload(response: Any) -> Any:
    """Extract the ``data`` payload from an hvac response envelope."""

    if isinstance(response, dict) and isinstance(response.get("data"), dict):
        return response["data"]
    return response


class WorkshopVaultClient:
    """Vault operations scoped per call to a namespace."""

    def __init__(
        self,
        address: str,
        token: Optional[str] = None,
        *,
        timeout: int = 30,
        verify: bool = True,
        client_factory: Callable[..., hvac.Client] = hvac.Client,
    ) -> None:
        self._address = address
        self._token = token
        self._timeout = timeout
        self._verify = verify
        self._client_factory = client_factory

    @classmethod
    def from_config(cls, config: VaultConfig, **kwargs: Any) -> "WorkshopVaultClient":
        address, token = config.require()
        return cls(address, token, timeout=config.timeout, verify=config.verify, **kwargs)

    @property
    def address(self) -> str:
        return self._address

    def _client(self, namespace: Optional[str] = None, token: Optional[str] = None) -> hvac.Client:
        return self._client_factory(
            url=self._address,
            token=token if token is not None else self._token,
            namespace=namespace,
            timeout=self._timeout,
            verify=self._verify,
        )

    # ------------------------------------------------------------------
    # Cluster checks
    # ------------------------------------------------------------------
    def health(self) -> Dict[str, Any]:
        """Return the health document of the cluster; sealed clusters are unavailable."""

        with vault_errors("Reading Vault health"):
            status = self._client().sys.read_health_status(
                method="GET", standby_ok=True, perf_standby_ok=True
            )
        if not isinstance(status, dict):
            raise RemoteUnavailableError(f"Vault at {self._address} returned no health document")
        if status.get("sealed"):
            raise RemoteUnavailableError(
                f"Vault at {self._address} is sealed",
                remediation="Unseal the cluster before running the workshop tooling",
            )
        return status

    def verify_token(self) -> Dict[str, Any]:
        """Look up the configured token; a rejected token makes the cluster unusable for this run."""

        try:
            with vault_errors("Looking up admin token"):
                response = self._client().auth.token.lookup_self()
        except VaultRequestError as exc:
            raise RemoteUnavailableError(
                f"Admin token rejected by Vault: {exc.error}",
                remediation="Issue a fresh admin token and set WORKSHOP_VAULT__ADMIN_TOKEN",
            ) from exc
        return _payload(response)

    # ------------------------------------------------------------------
    # Namespaces
    # ------------------------------------------------------------------
    def list_namespaces(self, parent: str) -> List[str]:
        """Names of the direct child namespaces of ``parent``, without trailing slashes."""

        with vault_errors(f"Listing namespaces under {parent}"):
            try:
                response = self._client(namespace=parent).sys.list_namespaces()
            except hvac_exceptions.InvalidPath:
                return []
        keys = _payload(response).get("keys", []) if response else []
        return [key.rstrip("/") for key in keys]

    def delete_namespace(self, parent: str, name: str) -> None:
        LOGGER.debug("Deleting namespace", extra={"parent": parent, "namespace": name})
        with vault_errors(f"Deleting namespace {parent}/{name}"):
            self._client(namespace=parent).sys.delete_namespace(path=name)

    # ------------------------------------------------------------------
    # Secrets and wrapping
    # ------------------------------------------------------------------
    def read_wrapped(self, namespace: str, path: str, wrap_ttl: str) -> Dict[str, Any]:
        """Read ``path`` in ``namespace`` as a response-wrapped secret and return ``wrap_info``."""

        with vault_errors(f"Wrapping {namespace}/{path}"):
            response = self._client(namespace=namespace).read(path, wrap_ttl=wrap_ttl)
        wrap_info = response.get("wrap_info") if isinstance(response, dict) else None
        if not wrap_info or not wrap_info.get("token"):
            raise VaultRequestError(
                f"Wrapping {namespace}/{path}",
                ValueError(f"response carried no wrap_info: {response!r}"),
            )
        return wrap_info

    def unwrap(self, wrapped_token: str, namespace: Optional[str] = None) -> Any:
        """Redeem a wrapping token. Vault invalidates the token on the first call."""

        with vault_errors("Unwrapping token"):
            return self._client(namespace=namespace, token=wrapped_token).sys.unwrap()

    def userpass_login(self, namespace: str, username: str, password: str) -> str:
        with vault_errors(f"Logging in as {username} in {namespace}"):
            response = self._client(namespace=namespace, token="").auth.userpass.login(
                username=username, password=password
            )
        return response["auth"]["client_token"]


__all__ = ["WorkshopVaultClient", "vault_errors"]
