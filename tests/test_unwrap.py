"""Tests for redeeming wrapped story tokens."""

import io

import pytest

from vault_workshop.errors import AlreadyConsumedError, InvalidInputError
from vault_workshop.services.unwrap import (
    StoryShape,
    TokenUnwrapper,
    classify_payload,
    render_unwrap_result,
    resolve_wrapped_token,
)

STORY = {"quote": "Trust, but verify.", "attendee": "Ada Lovelace", "email": "ada@example.org"}


class _TtyStream(io.StringIO):
    def isatty(self) -> bool:
        return True


class TestTokenUnwrapper:
    def test_token_is_single_use(self, fake_vault) -> None:
        wrap_info = fake_vault.read_wrapped("admin/team_ada", "secret/data/story", "60m")
        unwrapper = TokenUnwrapper(fake_vault)

        result = unwrapper.unwrap(wrap_info["token"])
        assert result.shape is StoryShape.KV_V2
        assert result.email == "ada@example.org"

        with pytest.raises(AlreadyConsumedError) as excinfo:
            unwrapper.unwrap(wrap_info["token"])
        assert excinfo.value.exit_code == 2
        assert "wrapping token is not valid" in excinfo.value.message

    def test_unknown_token(self, fake_vault) -> None:
        with pytest.raises(AlreadyConsumedError):
            TokenUnwrapper(fake_vault).unwrap("hvs.never-issued")


class TestClassifyPayload:
    def test_kv_v2_shape(self) -> None:
        result = classify_payload({"data": {"data": dict(STORY), "metadata": {}}})
        assert result.shape is StoryShape.KV_V2
        assert result.quote == STORY["quote"]

    def test_flat_shape(self) -> None:
        result = classify_payload({"data": dict(STORY)})
        assert result.shape is StoryShape.FLAT
        assert result.attendee == "Ada Lovelace"

    def test_incomplete_story_is_unknown(self) -> None:
        payload = {"data": {"data": {"quote": "x", "attendee": None, "email": "a@x.io"}}}
        assert classify_payload(payload).shape is StoryShape.UNKNOWN

    def test_non_mapping_is_unknown(self) -> None:
        assert classify_payload("plain text").shape is StoryShape.UNKNOWN


class TestRender:
    def test_story_reveal(self) -> None:
        text = render_unwrap_result(classify_payload({"data": dict(STORY)}))
        assert "Attendee: Ada Lovelace" in text
        assert "Trust, but verify." in text

    def test_unknown_payload_printed_as_json(self) -> None:
        text = render_unwrap_result(classify_payload({"data": {"other": 1}}))
        assert "unexpected structure" in text
        assert '"other": 1' in text


class TestResolveWrappedToken:
    def test_argument_wins(self) -> None:
        assert resolve_wrapped_token(" hvs.arg ", {"WRAPPED_TOKEN": "hvs.env"}) == "hvs.arg"

    def test_environment_next(self) -> None:
        assert resolve_wrapped_token(None, {"WRAPPED_TOKEN": "hvs.env"}) == "hvs.env"

    def test_piped_stdin_last(self) -> None:
        assert resolve_wrapped_token(None, {}, io.StringIO("hvs.piped\nignored\n")) == "hvs.piped"

    def test_interactive_stdin_is_not_read(self) -> None:
        with pytest.raises(InvalidInputError):
            resolve_wrapped_token(None, {}, _TtyStream("hvs.typed\n"))

    def test_nothing_provided(self) -> None:
        with pytest.raises(InvalidInputError):
            resolve_wrapped_token("", {})
