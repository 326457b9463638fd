"""Workshop provisioning using the Pulumi Automation API."""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import pulumi
import pulumi_vault as vault
from pulumi import automation as auto

from ..attendees.identifiers import resolve_namespace_suffix
from ..attendees.models import AttendeeEntry, DesiredState
from ..config import AppConfig
from ..errors import InvalidInputError, PerAttendeeError, ProvisioningError
from ..events.publisher import AuditEventPublisher
from ..services.batch import run_batch
from ..services.credentials import workshop_password
from .pulumi_programs.auth import create_policy, create_user, create_userpass_backend
from .pulumi_programs.namespace import AttendeeNamespaceSpec, create_namespace
from .pulumi_programs.secrets import build_story, create_kv_mount, create_story_secret

LOGGER = logging.getLogger(__name__)

NAMESPACES_OUTPUT = "attendee_namespaces"
POLICY_NAME = "workshop-attendee"


@dataclass
class WorkshopPlan:
    """Complete plan for provisioning the workshop stack."""

    stack_name: str
    parent_namespace: str
    attendees: List[AttendeeNamespaceSpec] = field(default_factory=list)
    skipped: List[PerAttendeeError] = field(default_factory=list)
    refresh: bool = True

    def exports(self) -> Dict[str, Dict[str, Any]]:
        return {spec.attendee_id: spec.export() for spec in self.attendees}


class WorkshopOrchestrator:
    """Primary entry point for provisioning the attendee namespaces."""

    def __init__(self, config: AppConfig, audit_publisher: Optional[AuditEventPublisher] = None) -> None:
        self._config = config
        self._audit_publisher = audit_publisher

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------
    def build_plan(self, state: DesiredState) -> WorkshopPlan:
        """Translate the desired state into per-attendee namespace specs."""

        result = run_batch(state, self._attendee_spec)
        seen: Dict[str, str] = {}
        for spec in result.succeeded:
            if spec.name in seen:
                raise InvalidInputError(
                    f"Attendees {seen[spec.name]} and {spec.attendee_id} both map to namespace {spec.path}",
                    remediation="Regenerate the desired state with: vault-workshop prepare <tickets.csv>",
                )
            seen[spec.name] = spec.attendee_id
        return WorkshopPlan(
            stack_name=self._stack_name(),
            parent_namespace=self._config.vault.parent_namespace,
            attendees=list(result.succeeded),
            skipped=list(result.failed),
        )

    def apply(self, state: DesiredState) -> Dict[str, Dict[str, Any]]:
        """Converge Vault onto the desired state; returns the ``attendee_namespaces`` export."""

        plan = self.build_plan(state)
        LOGGER.info(
            "Applying workshop plan",
            extra={"stack": plan.stack_name, "attendees": len(plan.attendees), "skipped": len(plan.skipped)},
        )
        if self._config.disable_pulumi:
            LOGGER.warning("Pulumi execution disabled; skipping stack update")
            self._publish_audit_event(plan, "PROVISION_WORKSHOP", "SUCCESS", {"pulumiDisabled": True})
            return plan.exports()
        self._config.vault.require()
        try:
            stack = self._create_or_select_stack(plan)
            if plan.refresh and self._config.pulumi.refresh_before_update:
                stack.refresh(on_output=lambda line: LOGGER.debug(line))
            result = stack.up(on_output=lambda line: LOGGER.info(line))
        except Exception as exc:
            LOGGER.exception("Pulumi stack update failed", extra={"stack": plan.stack_name})
            self._publish_audit_event(
                plan, "PROVISION_WORKSHOP", "FAILURE", {"stage": "apply", "error": str(exc)}
            )
            raise ProvisioningError(
                f"Provisioning of stack {plan.stack_name} failed: {exc}",
                remediation="Inspect the Pulumi output above, fix the cause and re-run; applies are idempotent",
            ) from exc
        exports = self._namespaces_output(result.outputs) or plan.exports()
        LOGGER.info("Pulumi stack applied", extra={"stack": plan.stack_name, "namespaces": len(exports)})
        self._publish_audit_event(plan, "PROVISION_WORKSHOP", "SUCCESS", {"namespaces": len(exports)})
        return exports

    def preview(self, state: DesiredState) -> Optional[str]:
        """Compute the pending changes without applying them."""

        plan = self.build_plan(state)
        if self._config.disable_pulumi:
            LOGGER.warning("Pulumi execution disabled; skipping preview")
            return None
        self._config.vault.require()
        try:
            stack = self._create_or_select_stack(plan)
            result = stack.preview(on_output=lambda line: LOGGER.info(line))
        except Exception as exc:
            LOGGER.exception("Pulumi preview failed", extra={"stack": plan.stack_name})
            raise ProvisioningError(f"Preview of stack {plan.stack_name} failed: {exc}") from exc
        return result.stdout

    # ------------------------------------------------------------------
    # Plan Builders
    # ------------------------------------------------------------------
    def _attendee_spec(self, entry: AttendeeEntry) -> AttendeeNamespaceSpec:
        username = entry.username
        if not username:
            raise PerAttendeeError(entry.id, "attendee has no first_name to derive a username from")
        suffix = resolve_namespace_suffix(entry)
        return AttendeeNamespaceSpec(
            attendee_id=entry.id,
            suffix=suffix,
            name=f"{self._config.vault.namespace_prefix}{suffix}",
            parent=self._config.vault.parent_namespace,
            username=username,
            password=workshop_password(username),
            policy_name=POLICY_NAME,
            email=entry.email,
            first_name=entry.first_name,
            last_name=entry.last_name,
            company=entry.company,
            story=build_story(entry.id, entry.first_name, entry.last_name, entry.email),
        )

    def _build_pulumi_program(self, plan: WorkshopPlan):
        def pulumi_program() -> None:
            vault_config = pulumi.Config("vault")
            provider = vault.Provider(
                "workshop-vault",
                address=vault_config.require("address"),
                token=vault_config.require_secret("token"),
                skip_child_token=True,
            )
            for spec in plan.attendees:
                namespace = create_namespace(spec, provider)
                mount = create_kv_mount(spec, namespace, provider)
                create_story_secret(spec, mount, provider)
                policy = create_policy(spec, namespace, provider)
                backend = create_userpass_backend(spec, namespace, provider)
                create_user(spec, backend, policy, provider)
            pulumi.export(NAMESPACES_OUTPUT, plan.exports())

        return pulumi_program

    # ------------------------------------------------------------------
    # Stack Helpers
    # ------------------------------------------------------------------
    def _create_or_select_stack(self, plan: WorkshopPlan) -> auto.Stack:
        address, token = self._config.vault.require()
        pulumi_config = self._config.pulumi
        kwargs: Dict[str, Any] = {"stack_name": plan.stack_name, "project_name": pulumi_config.project_name}
        if pulumi_config.work_dir:
            kwargs["work_dir"] = pulumi_config.work_dir
        else:
            kwargs["program"] = self._build_pulumi_program(plan)
        env_vars: Dict[str, str] = {}
        if pulumi_config.backend_url:
            env_vars["PULUMI_BACKEND_URL"] = pulumi_config.backend_url
        if pulumi_config.config_passphrase is not None:
            env_vars["PULUMI_CONFIG_PASSPHRASE"] = pulumi_config.config_passphrase.get_secret_value()
        if env_vars:
            kwargs["opts"] = auto.LocalWorkspaceOptions(env_vars=env_vars)
        stack = auto.create_or_select_stack(**kwargs)
        stack.workspace.install_plugin("vault", pulumi_config.plugin_version)
        stack.set_config("vault:address", auto.ConfigValue(value=address))
        stack.set_config("vault:token", auto.ConfigValue(value=token, secret=True))
        return stack

    @staticmethod
    def _namespaces_output(outputs: Optional[Dict[str, Any]]) -> Dict[str, Dict[str, Any]]:
        output = (outputs or {}).get(NAMESPACES_OUTPUT)
        if output is None:
            return {}
        return dict(getattr(output, "value", output) or {})

    def _publish_audit_event(
        self, plan: WorkshopPlan, action: str, outcome: str, details: Dict[str, Any]
    ) -> None:
        if self._audit_publisher is None:
            return
        payload = {"stackName": plan.stack_name, "attendees": len(plan.attendees), **details}
        self._audit_publisher.publish(plan.parent_namespace, action, outcome, payload)

    # ------------------------------------------------------------------
    # Utilities
    # ------------------------------------------------------------------
    def _stack_name(self) -> str:
        pulumi_config = self._config.pulumi
        if pulumi_config.organization:
            return f"{pulumi_config.organization}/{pulumi_config.project_name}/{pulumi_config.stack_name}"
        return pulumi_config.stack_name


__all__ = ["WorkshopOrchestrator", "WorkshopPlan", "NAMESPACES_OUTPUT"]
