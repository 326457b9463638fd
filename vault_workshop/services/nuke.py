"""Out-of-band teardown of workshop namespaces.

Namespaces are deleted straight through the Vault API. Pulumi state is never
read or written here; re-applying the stack afterwards recreates everything.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Iterable, List, Optional, Tuple

from ..attendees.identifiers import attendee_id, resolve_namespace_suffix
from ..attendees.models import AttendeeEntry, DesiredState
from ..config import AppConfig
from ..errors import (
    ConfirmationRejectedError,
    InvalidInputError,
    NukeNotAllowedError,
    RemoteUnavailableError,
    VaultRequestError,
)
from ..events.publisher import AuditEventPublisher
from .vault_client import WorkshopVaultClient

LOGGER = logging.getLogger(__name__)

CONFIRMATION_PHRASE = "YES_NUKE_WORKSHOP"


class TargetOrigin(str, Enum):
    EXPECTED = "expected"
    ORPHAN = "orphan"


@dataclass(frozen=True)
class NukeTarget:
    name: str
    origin: TargetOrigin


@dataclass
class NukePlan:
    """Namespaces to delete under ``parent_namespace``, each tagged with its origin."""

    parent_namespace: str
    targets: List[NukeTarget] = field(default_factory=list)
    orphans_checked: bool = False

    @property
    def names(self) -> List[str]:
        return [target.name for target in self.targets]

    def by_origin(self, origin: TargetOrigin) -> List[str]:
        return [target.name for target in self.targets if target.origin is origin]

    def qualified(self, name: str) -> str:
        return f"{self.parent_namespace}/{name}"


@dataclass
class NukeReport:
    plan: NukePlan
    dry_run: bool = False
    deleted: List[str] = field(default_factory=list)
    failed: List[Tuple[str, str]] = field(default_factory=list)


def expected_namespaces(state: DesiredState, prefix: str) -> List[str]:
    """Namespace names the desired state implies, deduplicated in input order."""

    names: List[str] = []
    for entry in state:
        name = f"{prefix}{resolve_namespace_suffix(entry)}"
        if name not in names:
            names.append(name)
    return names


def plan_nuke(
    state: DesiredState,
    parent_namespace: str,
    prefix: str,
    live_namespaces: Optional[Iterable[str]] = None,
) -> NukePlan:
    """Expected namespaces first, then live prefixed namespaces absent from the desired state."""

    expected = expected_namespaces(state, prefix)
    targets = [NukeTarget(name, TargetOrigin.EXPECTED) for name in expected]
    if live_namespaces is not None:
        seen = set(expected)
        for name in live_namespaces:
            name = name.rstrip("/")
            if not name.startswith(prefix) or name in seen:
                continue
            seen.add(name)
            targets.append(NukeTarget(name, TargetOrigin.ORPHAN))
    return NukePlan(
        parent_namespace=parent_namespace,
        targets=targets,
        orphans_checked=live_namespaces is not None,
    )


def render_plan(plan: NukePlan) -> str:
    lines = [f"The following namespaces will be deleted from Vault (children of {plan.parent_namespace}/):"]
    for target in plan.targets:
        label = "from desired state" if target.origin is TargetOrigin.EXPECTED else "orphan in Vault"
        lines.append(f"   - {plan.qualified(target.name)}  ({label})")
    return "\n".join(lines) + "\n"


def find_attendee(state: DesiredState, email: str) -> AttendeeEntry:
    entry = state.get(attendee_id(email))
    if entry is None:
        raise InvalidInputError(
            f"User with email {email} not found in the desired state",
            remediation="Check the email or regenerate the desired state with: vault-workshop prepare <tickets.csv>",
        )
    return entry


def require_nuke_allowed(settings: AppConfig) -> None:
    if not settings.nuke_allowed:
        raise NukeNotAllowedError(
            "Nuke is not allowed: WORKSHOP_NUKE_ALLOWED is not set to 'true'.",
            remediation="Add WORKSHOP_NUKE_ALLOWED=true to the instructor .env (never to attendee"
            " bundles), then re-run: vault-workshop nuke",
        )


class NukeEngine:
    """Guarded deletion of workshop namespaces."""

    def __init__(
        self,
        vault: WorkshopVaultClient,
        settings: AppConfig,
        confirm: Callable[[str], str],
        audit_publisher: Optional[AuditEventPublisher] = None,
        echo: Callable[[str], None] = print,
    ) -> None:
        self._vault = vault
        self._settings = settings
        self._confirm = confirm
        self._audit_publisher = audit_publisher
        self._echo = echo

    @property
    def _parent(self) -> str:
        return self._settings.vault.parent_namespace

    @property
    def _prefix(self) -> str:
        return self._settings.vault.namespace_prefix

    # ------------------------------------------------------------------
    # Guards
    # ------------------------------------------------------------------
    def check_allowed(self) -> None:
        require_nuke_allowed(self._settings)

    def _require_confirmation(self) -> None:
        self._echo("This will irreversibly delete the namespaces above from Vault.")
        self._echo("It will NOT touch the Pulumi stack state, only Vault itself.")
        try:
            answer = self._confirm(f"Type {CONFIRMATION_PHRASE} to continue: ")
        except EOFError as exc:
            raise ConfirmationRejectedError("Cancelled: no confirmation received. No namespaces were deleted.") from exc
        if (answer or "").strip() != CONFIRMATION_PHRASE:
            raise ConfirmationRejectedError("Cancelled. No namespaces were deleted.")

    # ------------------------------------------------------------------
    # Planning and execution
    # ------------------------------------------------------------------
    def build_plan(self, state: DesiredState, include_orphans: bool = False) -> NukePlan:
        live: Optional[List[str]] = None
        if include_orphans:
            LOGGER.info("Checking Vault for existing %s* namespaces under %s/", self._prefix, self._parent)
            try:
                live = self._vault.list_namespaces(self._parent)
            except VaultRequestError as exc:
                LOGGER.warning(
                    "Could not list namespaces under %s/; skipping orphan detection: %s",
                    self._parent,
                    exc.error,
                )
        return plan_nuke(state, self._parent, self._prefix, live)

    def run(self, state: DesiredState, *, dry_run: bool = False, include_orphans: bool = False) -> NukeReport:
        """Plan, confirm and delete. Nothing is deleted unless every guard passes."""

        self.check_allowed()
        plan = self.build_plan(state, include_orphans=include_orphans)
        if not plan.targets:
            self._echo("No namespaces found to delete. Nothing to do.")
            return NukeReport(plan=plan, dry_run=dry_run)
        self._echo(render_plan(plan))
        if dry_run:
            self._echo("Dry-run mode enabled. No changes will be made.")
            return NukeReport(plan=plan, dry_run=True)
        self._require_confirmation()
        return self.execute(plan)

    def execute(self, plan: NukePlan) -> NukeReport:
        """Delete every planned namespace in order; a failed delete does not stop the rest."""

        report = NukeReport(plan=plan)
        for target in plan.targets:
            qualified = plan.qualified(target.name)
            self._echo(f"   -> Deleting {qualified} ...")
            try:
                self._vault.delete_namespace(self._parent, target.name)
            except (VaultRequestError, RemoteUnavailableError) as exc:
                LOGGER.error(
                    "Failed to delete %s: %s",
                    qualified,
                    exc.message,
                    extra={"namespace": qualified, "origin": target.origin.value},
                )
                report.failed.append((target.name, exc.message))
                self._audit("DELETE_NAMESPACE", qualified, "FAILURE", {"error": exc.message})
                continue
            report.deleted.append(target.name)
            self._echo(f"      Deleted {qualified}")
            self._audit("DELETE_NAMESPACE", qualified, "SUCCESS", {"origin": target.origin.value})
        return report

    def reset_attendee(self, state: DesiredState, email: str) -> str:
        """Delete one attendee's namespace so the next apply recreates it; returns the namespace."""

        self.check_allowed()
        entry = find_attendee(state, email)
        name = f"{self._prefix}{resolve_namespace_suffix(entry)}"
        qualified = f"{self._parent}/{name}"
        LOGGER.info("Resetting attendee", extra={"email": email, "namespace": qualified})
        try:
            self._vault.delete_namespace(self._parent, name)
        except VaultRequestError as exc:
            self._audit("RESET_NAMESPACE", qualified, "FAILURE", {"error": exc.message})
            raise
        self._audit("RESET_NAMESPACE", qualified, "SUCCESS", {"attendee": entry.id})
        return qualified

    def _audit(self, action: str, namespace: str, outcome: str, details: dict) -> None:
        if self._audit_publisher is not None:
            self._audit_publisher.publish(namespace, action, outcome, details)


__all__ = [
    "CONFIRMATION_PHRASE",
    "NukeEngine",
    "NukePlan",
    "NukeReport",
    "NukeTarget",
    "TargetOrigin",
    "expected_namespaces",
    "plan_nuke",
    "render_plan",
    "require_nuke_allowed",
]
