"""Tests for the Pulumi-driven provisioning orchestrator."""

import json
from typing import Dict, List
from unittest.mock import MagicMock

import pulumi
import pytest

from vault_workshop.attendees.models import AttendeeEntry, DesiredState
from vault_workshop.errors import ConfigurationError, InvalidInputError, ProvisioningError
from vault_workshop.orchestration import main as orchestration
from vault_workshop.orchestration.main import NAMESPACES_OUTPUT, WorkshopOrchestrator
from vault_workshop.orchestration.pulumi_programs.auth import render_policy
from vault_workshop.orchestration.pulumi_programs.secrets import STORY_QUOTES, build_story, pick_quote


@pytest.fixture
def pulumi_enabled(settings):
    return settings.model_copy(update={"disable_pulumi": False})


@pytest.fixture
def stack(monkeypatch):
    stack = MagicMock(name="Stack")
    create = MagicMock(return_value=stack)
    monkeypatch.setattr(orchestration.auto, "create_or_select_stack", create)
    stack.create = create
    return stack


class TestBuildPlan:
    def test_one_spec_per_attendee(self, settings, state) -> None:
        plan = WorkshopOrchestrator(settings).build_plan(state)

        assert plan.stack_name == "workshop"
        assert [spec.path for spec in plan.attendees] == [
            "admin/team_raymon-e",
            "admin/team_ada",
            "admin/team_raymon-b",
            "admin/team_grace",
        ]
        bakker = plan.attendees[2]
        assert bakker.username == "raymon"
        assert bakker.password == "VaultWorkshop-raymon!"
        assert bakker.story["email"] == "raymon.bakker@example.com"

    def test_colliding_namespaces_are_rejected(self, settings) -> None:
        state = DesiredState.from_entries(
            [
                AttendeeEntry("a", "a@x.io", "Sam", "A", namespace_suffix="sam"),
                AttendeeEntry("b", "b@x.io", "Sam", "B"),
            ]
        )
        with pytest.raises(InvalidInputError):
            WorkshopOrchestrator(settings).build_plan(state)

    def test_attendee_without_username_is_skipped(self, settings, state) -> None:
        broken = AttendeeEntry("x", "x@x.io", "", "", namespace_suffix="x")
        plan = WorkshopOrchestrator(settings).build_plan(DesiredState.from_entries(list(state) + [broken]))
        assert len(plan.attendees) == 4
        assert [failure.attendee_id for failure in plan.skipped] == ["x"]

    def test_organization_scopes_stack_name(self, settings, state) -> None:
        scoped = settings.model_copy(
            update={"pulumi": settings.pulumi.model_copy(update={"organization": "acme"})}
        )
        assert WorkshopOrchestrator(scoped).build_plan(state).stack_name == "acme/vault-workshop/workshop"


class TestApply:
    def test_disabled_pulumi_returns_planned_exports(self, settings, state) -> None:
        audit = MagicMock()
        exports = WorkshopOrchestrator(settings, audit).apply(state)

        assert exports["ada-at-example-org"] == {
            "namespace_path": "admin/team_ada",
            "email": "ada@example.org",
            "first_name": "Ada",
            "last_name": "Lovelace",
            "company": "Analytical",
        }
        assert audit.publish.call_args.args[2] == "SUCCESS"

    def test_runs_refresh_and_up(self, pulumi_enabled, state, stack) -> None:
        outputs = {"ada-at-example-org": {"namespace_path": "admin/team_ada"}}
        stack.up.return_value.outputs = {NAMESPACES_OUTPUT: MagicMock(value=outputs)}

        exports = WorkshopOrchestrator(pulumi_enabled).apply(state)

        assert exports == outputs
        stack.refresh.assert_called_once()
        stack.up.assert_called_once()
        stack.workspace.install_plugin.assert_called_once_with("vault", pulumi_enabled.pulumi.plugin_version)
        config_keys = [call.args[0] for call in stack.set_config.call_args_list]
        assert config_keys == ["vault:address", "vault:token"]
        assert stack.set_config.call_args_list[1].args[1].secret is True
        assert "program" in stack.create.call_args.kwargs

    def test_failure_raises_provisioning_error(self, pulumi_enabled, state, stack) -> None:
        stack.up.side_effect = RuntimeError("provider crashed")
        audit = MagicMock()

        with pytest.raises(ProvisioningError) as excinfo:
            WorkshopOrchestrator(pulumi_enabled, audit).apply(state)

        assert "provider crashed" in excinfo.value.message
        assert audit.publish.call_args.args[2] == "FAILURE"

    def test_missing_admin_token_is_a_configuration_problem(self, pulumi_enabled, state, stack) -> None:
        unconfigured = pulumi_enabled.model_copy(
            update={"vault": pulumi_enabled.vault.model_copy(update={"admin_token": None})}
        )
        with pytest.raises(ConfigurationError) as excinfo:
            WorkshopOrchestrator(unconfigured).apply(state)
        assert "WORKSHOP_VAULT__ADMIN_TOKEN" in excinfo.value.message
        stack.create.assert_not_called()


class TestPrograms:
    def test_quote_choice_is_stable(self) -> None:
        assert pick_quote("ada-at-example-org") == pick_quote("ada-at-example-org")
        assert pick_quote("ada-at-example-org") in STORY_QUOTES

    def test_story_fields(self) -> None:
        story = build_story("ada-at-example-org", "Ada", "Lovelace", "ada@example.org")
        assert set(story) == {"quote", "attendee", "email"}
        assert story["attendee"] == "Ada Lovelace"

    def test_policy_grants_crud_and_list_on_kv(self) -> None:
        policy = render_policy()
        assert 'path "secret/*"' in policy
        for capability in ("create", "read", "update", "delete", "list"):
            assert f'"{capability}"' in policy


class RecordingMocks(pulumi.runtime.Mocks):
    """Echo inputs back as state and remember every registered resource."""

    def __init__(self) -> None:
        self.resources: List[pulumi.runtime.MockResourceArgs] = []

    def new_resource(self, args: pulumi.runtime.MockResourceArgs):
        self.resources.append(args)
        return [f"{args.name}_id", args.inputs]

    def call(self, args: pulumi.runtime.MockCallArgs):
        return {}


def _plain(value):
    if isinstance(value, dict) and "value" in value:
        return value["value"]
    return value


@pytest.fixture
def registered(settings, state):
    mocks = RecordingMocks()
    pulumi.runtime.set_mocks(mocks, project="vault-workshop", stack="workshop", preview=False)
    pulumi.runtime.set_all_config({"vault:address": settings.vault.address, "vault:token": "hvs.admin"})
    orchestrator = WorkshopOrchestrator(settings)
    program = orchestrator._build_pulumi_program(orchestrator.build_plan(state))

    @pulumi.runtime.test
    def run():
        program()

    run()
    by_kind: Dict[str, list] = {}
    for resource in mocks.resources:
        by_kind.setdefault(resource.typ.split(":")[-1], []).append(resource)
    return by_kind


class TestWorkshopProgram:
    def test_one_provider_and_six_resources_per_attendee(self, registered, state) -> None:
        assert len(registered.pop("vault")) == 1
        assert sorted(registered) == ["AuthBackend", "Endpoint", "Mount", "Namespace", "Policy", "SecretV2"]
        assert all(len(resources) == len(state) for resources in registered.values())

    def test_namespace_lives_under_parent(self, registered) -> None:
        namespaces = {resource.inputs["path"]: resource.inputs for resource in registered["Namespace"]}
        assert namespaces["team_ada"]["namespace"] == "admin"
        assert namespaces["team_ada"]["customMetadata"] == {"attendee": "ada-at-example-org"}

    def test_kv_v2_mount_and_story(self, registered) -> None:
        mounts = {resource.inputs["namespace"]: resource.inputs for resource in registered["Mount"]}
        mount = mounts["admin/team_raymon-b"]
        assert mount["path"] == "secret"
        assert mount["type"] == "kv"
        assert mount["options"] == {"version": "2"}

        stories = {resource.inputs["namespace"]: resource.inputs for resource in registered["SecretV2"]}
        story = stories["admin/team_raymon-b"]
        assert story["name"] == "story"
        assert story["mount"] == "secret"
        assert json.loads(_plain(story["dataJson"]))["email"] == "raymon.bakker@example.com"

    def test_user_is_bound_to_policy(self, registered) -> None:
        users = {resource.inputs["namespace"]: resource.inputs for resource in registered["Endpoint"]}
        user = users["admin/team_grace"]
        assert user["path"] == "auth/userpass/users/grace"
        payload = json.loads(_plain(user["dataJson"]))
        assert payload == {"password": "VaultWorkshop-grace!", "token_policies": ["workshop-attendee"]}

        policies = [resource.inputs["name"] for resource in registered["Policy"]]
        assert set(policies) == {"workshop-attendee"}
        backends = [resource.inputs for resource in registered["AuthBackend"]]
        assert all(backend["type"] == "userpass" and backend["path"] == "userpass" for backend in backends)
