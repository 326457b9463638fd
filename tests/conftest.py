"""Shared pytest fixtures for the workshop test suite.

Provides:
- settings: AppConfig rooted in a temporary directory, Pulumi disabled
- records / state: the Raymon scenario plus two unrelated attendees
- fake_vault: in-memory stand-in for WorkshopVaultClient honouring
  namespaces and single-use wrapping tokens
"""

import itertools
from typing import Any, Dict, List, Optional, Set

import pytest

from vault_workshop.attendees.desired_state import build_desired_state
from vault_workshop.attendees.identifiers import resolve_namespace_suffix
from vault_workshop.attendees.models import AttendeeRecord, DesiredState
from vault_workshop.config import AppConfig, PathsConfig, VaultConfig
from vault_workshop.errors import RemoteUnavailableError, VaultRequestError
from vault_workshop.orchestration.pulumi_programs.secrets import build_story

VAULT_ADDRESS = "https://vault.example.test:8200"


class FakeVault:
    """Same surface as WorkshopVaultClient, backed by dictionaries."""

    def __init__(self, address: str = VAULT_ADDRESS) -> None:
        self.address = address
        self.namespaces: Dict[str, Set[str]] = {}
        self.stories: Dict[str, Dict[str, str]] = {}
        self.users: Dict[str, Dict[str, str]] = {}
        self.wrapped: Dict[str, Any] = {}
        self.deleted: List[str] = []
        self.fail_delete: Set[str] = set()
        self.list_error: Optional[Exception] = None
        self.token_valid = True
        self.sealed = False
        self._tokens = itertools.count(1)

    def provision(self, state: DesiredState, settings: AppConfig) -> None:
        """Create what a successful apply would leave behind."""

        for entry in state:
            suffix = resolve_namespace_suffix(entry)
            name = f"{settings.vault.namespace_prefix}{suffix}"
            self.namespaces.setdefault(settings.vault.parent_namespace, set()).add(name)
            qualified = settings.vault.namespace_path(suffix)
            self.stories[qualified] = build_story(entry.id, entry.first_name, entry.last_name, entry.email)
            self.users[qualified] = {"username": entry.username}

    # -- WorkshopVaultClient surface -------------------------------------
    def health(self) -> Dict[str, Any]:
        if self.sealed:
            raise RemoteUnavailableError(f"Vault at {self.address} is sealed")
        return {"initialized": True, "sealed": False, "version": "1.17.0+ent"}

    def verify_token(self) -> Dict[str, Any]:
        if not self.token_valid:
            raise RemoteUnavailableError("Admin token rejected by Vault: permission denied")
        return {"policies": ["root"]}

    def list_namespaces(self, parent: str) -> List[str]:
        if self.list_error is not None:
            raise self.list_error
        return sorted(self.namespaces.get(parent, set()))

    def delete_namespace(self, parent: str, name: str) -> None:
        if name in self.fail_delete:
            raise VaultRequestError(f"Deleting namespace {parent}/{name}", Exception("namespace is locked"))
        self.namespaces.get(parent, set()).discard(name)
        self.stories.pop(f"{parent}/{name}", None)
        self.deleted.append(f"{parent}/{name}")

    def read_wrapped(self, namespace: str, path: str, wrap_ttl: str) -> Dict[str, Any]:
        story = self.stories.get(namespace)
        if story is None or path != "secret/data/story":
            raise VaultRequestError(f"Wrapping {namespace}/{path}", Exception("permission denied"))
        token = f"hvs.wrapped-{next(self._tokens)}"
        self.wrapped[token] = {
            "request_id": token,
            "data": {"data": dict(story), "metadata": {"version": 1}},
        }
        return {"token": token, "ttl": 3600, "creation_path": path}

    def unwrap(self, wrapped_token: str, namespace: Optional[str] = None) -> Any:
        try:
            return self.wrapped.pop(wrapped_token)
        except KeyError:
            raise VaultRequestError(
                "Unwrapping token", Exception("wrapping token is not valid or does not exist")
            ) from None

    def userpass_login(self, namespace: str, username: str, password: str) -> str:
        user = self.users.get(namespace)
        if user is None or user["username"] != username:
            raise VaultRequestError(f"Logging in as {username} in {namespace}", Exception("invalid username or password"))
        return f"hvs.client-{username}"


@pytest.fixture
def settings(tmp_path) -> AppConfig:
    return AppConfig(
        _env_file=None,
        vault=VaultConfig(address=VAULT_ADDRESS, admin_token="hvs.admin"),
        paths=PathsConfig(input_dir=tmp_path / "input", output_dir=tmp_path / "output"),
        disable_pulumi=True,
    )


@pytest.fixture
def records() -> List[AttendeeRecord]:
    return [
        AttendeeRecord("Raymon", "Epping", "raymon.epping@ibm.com", "IBM"),
        AttendeeRecord("Ada", "Lovelace", "ada@example.org", "Analytical"),
        AttendeeRecord("Raymon", "Bakker", "raymon.bakker@example.com", "Example"),
        AttendeeRecord("Grace", "Hopper", "grace@navy.example", ""),
    ]


@pytest.fixture
def state(records) -> DesiredState:
    return build_desired_state(records)


@pytest.fixture
def fake_vault(state, settings) -> FakeVault:
    vault = FakeVault()
    vault.provision(state, settings)
    return vault


@pytest.fixture
def tickets_csv(settings):
    settings.paths.input_dir.mkdir(parents=True, exist_ok=True)
    path = settings.paths.input_dir / "tickets.csv"
    path.write_text(
        "First Name;Last Name;Email;Ticket;Company\n"
        "Raymon;Epping;raymon.epping@ibm.com;General;IBM\n"
        "Ada;Lovelace;ada@example.org;General;Analytical\n"
        "Nobody;Blank;;General;None\n"
        "Raymon;Bakker;raymon.bakker@example.com;Speaker;Example\n"
        "Grace;Hopper;grace@navy.example;General;\n",
        encoding="utf-8",
    )
    return path
