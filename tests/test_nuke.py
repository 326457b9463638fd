"""Tests for the guarded namespace teardown."""

from unittest.mock import MagicMock

import pytest

from vault_workshop.attendees.models import AttendeeEntry, DesiredState
from vault_workshop.errors import (
    ConfirmationRejectedError,
    InvalidInputError,
    NukeNotAllowedError,
    VaultRequestError,
)
from vault_workshop.services.nuke import (
    CONFIRMATION_PHRASE,
    NukeEngine,
    TargetOrigin,
    expected_namespaces,
    plan_nuke,
    render_plan,
)


def _engine(fake_vault, settings, answer=CONFIRMATION_PHRASE, audit=None):
    prompts = []

    def confirm(prompt: str) -> str:
        prompts.append(prompt)
        if isinstance(answer, BaseException):
            raise answer
        return answer

    engine = NukeEngine(fake_vault, settings, confirm, audit_publisher=audit, echo=lambda message: None)
    return engine, prompts


def _allowed(settings):
    return settings.model_copy(update={"nuke_allowed": True})


class TestPlanning:
    def test_expected_namespaces_follow_input_order(self, state) -> None:
        assert expected_namespaces(state, "team_") == [
            "team_raymon-e",
            "team_ada",
            "team_raymon-b",
            "team_grace",
        ]

    def test_orphans_are_tagged_and_listed_last(self) -> None:
        state = DesiredState.from_entries(
            [
                AttendeeEntry("a", "a@x.io", "A", "X", namespace_suffix="a"),
                AttendeeEntry("b", "b@x.io", "B", "X", namespace_suffix="b"),
            ]
        )
        plan = plan_nuke(state, "admin", "team_", ["team_a/", "team_b/", "team_c/", "shared/"])

        assert plan.names == ["team_a", "team_b", "team_c"]
        assert plan.by_origin(TargetOrigin.EXPECTED) == ["team_a", "team_b"]
        assert plan.by_origin(TargetOrigin.ORPHAN) == ["team_c"]
        assert plan.orphans_checked

    def test_render_plan_labels_origin(self) -> None:
        state = DesiredState.from_entries([AttendeeEntry("a", "a@x.io", "A", "X", namespace_suffix="a")])
        text = render_plan(plan_nuke(state, "admin", "team_", ["team_z"]))
        assert "admin/team_a  (from desired state)" in text
        assert "admin/team_z  (orphan in Vault)" in text


class TestGuards:
    @pytest.mark.parametrize("dry_run", [False, True])
    def test_flag_false_deletes_nothing(self, fake_vault, settings, state, dry_run) -> None:
        engine, prompts = _engine(fake_vault, settings)

        with pytest.raises(NukeNotAllowedError):
            engine.run(state, dry_run=dry_run, include_orphans=True)

        assert fake_vault.deleted == []
        assert prompts == []

    def test_dry_run_prints_plan_without_prompting(self, fake_vault, settings, state) -> None:
        engine, prompts = _engine(fake_vault, _allowed(settings))

        report = engine.run(state, dry_run=True)

        assert report.dry_run
        assert len(report.plan.targets) == 4
        assert fake_vault.deleted == []
        assert prompts == []

    @pytest.mark.parametrize("answer", ["yes", "YES_NUKE", "", EOFError()])
    def test_wrong_or_missing_confirmation(self, fake_vault, settings, state, answer) -> None:
        engine, prompts = _engine(fake_vault, _allowed(settings), answer=answer)

        with pytest.raises(ConfirmationRejectedError):
            engine.run(state)

        assert len(prompts) == 1
        assert fake_vault.deleted == []


class TestExecution:
    def test_deletes_every_expected_namespace(self, fake_vault, settings, state) -> None:
        engine, _ = _engine(fake_vault, _allowed(settings), answer=f"  {CONFIRMATION_PHRASE}\n")

        report = engine.run(state)

        assert report.deleted == ["team_raymon-e", "team_ada", "team_raymon-b", "team_grace"]
        assert fake_vault.list_namespaces("admin") == []

    def test_failed_delete_does_not_stop_the_rest(self, fake_vault, settings, state) -> None:
        fake_vault.fail_delete.add("team_ada")
        audit = MagicMock()
        engine, _ = _engine(fake_vault, _allowed(settings), audit=audit)

        report = engine.run(state)

        assert report.deleted == ["team_raymon-e", "team_raymon-b", "team_grace"]
        assert [name for name, _ in report.failed] == ["team_ada"]
        outcomes = [call.args[2] for call in audit.publish.call_args_list]
        assert outcomes.count("FAILURE") == 1
        assert outcomes.count("SUCCESS") == 3

    def test_include_orphans_deletes_unknown_prefixed_namespaces(self, fake_vault, settings, state) -> None:
        fake_vault.namespaces["admin"].update({"team_leftover", "platform"})
        engine, _ = _engine(fake_vault, _allowed(settings))

        report = engine.run(state, include_orphans=True)

        assert "team_leftover" in report.deleted
        assert fake_vault.list_namespaces("admin") == ["platform"]

    def test_listing_failure_skips_orphan_detection(self, fake_vault, settings, state) -> None:
        fake_vault.list_error = VaultRequestError("Listing namespaces under admin", Exception("denied"))
        engine, _ = _engine(fake_vault, _allowed(settings))

        plan = engine.build_plan(state, include_orphans=True)

        assert not plan.orphans_checked
        assert len(plan.targets) == 4

    def test_empty_plan_is_a_no_op(self, fake_vault, settings) -> None:
        engine, prompts = _engine(fake_vault, _allowed(settings))

        report = engine.run(DesiredState.from_entries([]))

        assert report.plan.targets == []
        assert prompts == []


class TestReset:
    def test_requires_flag(self, fake_vault, settings, state) -> None:
        engine, _ = _engine(fake_vault, settings)
        with pytest.raises(NukeNotAllowedError):
            engine.reset_attendee(state, "ada@example.org")
        assert fake_vault.deleted == []

    def test_deletes_only_that_namespace(self, fake_vault, settings, state) -> None:
        engine, _ = _engine(fake_vault, _allowed(settings))

        namespace = engine.reset_attendee(state, "Raymon.Bakker@Example.com")

        assert namespace == "admin/team_raymon-b"
        assert fake_vault.deleted == ["admin/team_raymon-b"]

    def test_unknown_email(self, fake_vault, settings, state) -> None:
        engine, _ = _engine(fake_vault, _allowed(settings))
        with pytest.raises(InvalidInputError):
            engine.reset_attendee(state, "stranger@example.com")
