"""Attendee-side login with the credentials of an env bundle."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Dict, Mapping, Optional

from dotenv import dotenv_values

from ..errors import ConfigurationError
from .vault_client import WorkshopVaultClient

LOGGER = logging.getLogger(__name__)

REQUIRED_VARIABLES = ("VAULT_ADDR", "VAULT_NAMESPACE", "VAULT_USERNAME")


@dataclass(frozen=True)
class LoginContext:
    address: str
    namespace: str
    username: str
    password: Optional[str] = None


def find_bundle(directory: Path) -> Path:
    candidates = sorted(directory.glob("*.env"))
    if len(candidates) == 1:
        return candidates[0]
    if not candidates:
        raise ConfigurationError(
            f"No .env bundle found in {directory}",
            remediation="Pass the bundle explicitly: vault-workshop login <bundle.env>",
        )
    raise ConfigurationError(
        "Several .env bundles found: " + ", ".join(path.name for path in candidates),
        remediation="Pick one explicitly: vault-workshop login <bundle.env>",
    )


def resolve_login_context(
    environ: Mapping[str, str],
    bundle: Optional[Path] = None,
    cwd: Optional[Path] = None,
) -> LoginContext:
    """Use the bundle variables unless the environment already carries all of them."""

    values: Dict[str, Optional[str]] = {key: environ.get(key) for key in REQUIRED_VARIABLES + ("VAULT_PASSWORD",)}
    if bundle is not None or not all(values[key] for key in REQUIRED_VARIABLES):
        path = bundle or find_bundle(cwd or Path.cwd())
        if not path.is_file():
            raise ConfigurationError(f"Bundle {path} does not exist")
        LOGGER.info("Loading credentials from %s", path)
        values.update({key: value for key, value in dotenv_values(path).items() if key in values and value})
    missing = [key for key in REQUIRED_VARIABLES if not values.get(key)]
    if missing:
        raise ConfigurationError(
            f"Missing {', '.join(missing)} in the bundle",
            remediation="Ask the instructor for a fresh bundle or set the variables manually",
        )
    return LoginContext(
        address=values["VAULT_ADDR"],
        namespace=values["VAULT_NAMESPACE"],
        username=values["VAULT_USERNAME"],
        password=values.get("VAULT_PASSWORD"),
    )


def login(
    context: LoginContext,
    prompt_password: Callable[[str], str],
    client_factory: Callable[[str], WorkshopVaultClient] = WorkshopVaultClient,
) -> str:
    """Authenticate with userpass in the attendee namespace and return the client token."""

    password = context.password or prompt_password(f"Password for {context.username}: ")
    vault = client_factory(context.address)
    LOGGER.info("Logging in", extra={"namespace": context.namespace, "username": context.username})
    return vault.userpass_login(context.namespace, context.username, password)


__all__ = ["LoginContext", "find_bundle", "login", "resolve_login_context"]
