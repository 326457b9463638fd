"""Redeeming wrapped story tokens and rendering the revealed payload."""
from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Mapping, Optional, TextIO

from ..errors import AlreadyConsumedError, InvalidInputError, VaultRequestError
from .vault_client import WorkshopVaultClient

LOGGER = logging.getLogger(__name__)

STORY_KEYS = ("attendee", "email", "quote")


class StoryShape(str, Enum):
    """Known layouts of an unwrapped payload."""

    KV_V2 = "kv-v2"
    FLAT = "flat"
    UNKNOWN = "unknown"


@dataclass(frozen=True)
class UnwrapResult:
    shape: StoryShape
    payload: Any
    attendee: Optional[str] = None
    email: Optional[str] = None
    quote: Optional[str] = None


def _story_fields(candidate: Any) -> Optional[Mapping[str, Any]]:
    if isinstance(candidate, Mapping) and all(candidate.get(key) is not None for key in STORY_KEYS):
        return candidate
    return None


def classify_payload(payload: Any) -> UnwrapResult:
    """Tag an unwrap response as a KV-v2 story, a flat story or something else."""

    data = payload.get("data") if isinstance(payload, Mapping) else None
    nested = data.get("data") if isinstance(data, Mapping) else None
    for shape, candidate in ((StoryShape.KV_V2, nested), (StoryShape.FLAT, data)):
        story = _story_fields(candidate)
        if story is not None:
            return UnwrapResult(
                shape=shape,
                payload=payload,
                attendee=str(story["attendee"]),
                email=str(story["email"]),
                quote=str(story["quote"]),
            )
    return UnwrapResult(shape=StoryShape.UNKNOWN, payload=payload)


def render_unwrap_result(result: UnwrapResult) -> str:
    if result.shape is StoryShape.UNKNOWN:
        if isinstance(result.payload, (dict, list)):
            body = json.dumps(result.payload, indent=2, ensure_ascii=False)
        else:
            body = str(result.payload)
        return "Unwrapped payload (unexpected structure, printing as-is):\n" + body + "\n"
    return (
        "Story Reveal\n"
        f"Attendee: {result.attendee}\n"
        f"Email:    {result.email}\n"
        "\n"
        f"Quote:\n{result.quote}\n"
    )


def resolve_wrapped_token(
    argument: Optional[str],
    environ: Mapping[str, str],
    stdin: Optional[TextIO] = None,
) -> str:
    """Pick the token from the argument, then ``WRAPPED_TOKEN``, then one line of piped stdin."""

    token = (argument or "").strip()
    if not token:
        token = (environ.get("WRAPPED_TOKEN") or "").strip()
    if not token and stdin is not None and not stdin.isatty():
        token = (stdin.readline() or "").strip()
    if not token:
        raise InvalidInputError(
            "No wrapped token provided.",
            remediation="Usage: vault-workshop unwrap <token> | WRAPPED_TOKEN=<token> vault-workshop unwrap"
            " | echo <token> | vault-workshop unwrap",
        )
    return token


class TokenUnwrapper:
    """Redeem a wrapped token exactly once; never retries."""

    def __init__(self, vault: WorkshopVaultClient, namespace: Optional[str] = None) -> None:
        self._vault = vault
        self._namespace = namespace

    def unwrap(self, token: str) -> UnwrapResult:
        try:
            payload = self._vault.unwrap(token, namespace=self._namespace)
        except VaultRequestError as exc:
            LOGGER.debug("Unwrap rejected", extra={"error": str(exc.error)})
            raise AlreadyConsumedError(
                f"Error unwrapping token: {exc.error}",
                remediation="Wrapped tokens are single-use and expire; ask the instructor to reissue one",
            ) from exc
        return classify_payload(payload)


__all__ = [
    "StoryShape",
    "UnwrapResult",
    "TokenUnwrapper",
    "classify_payload",
    "render_unwrap_result",
    "resolve_wrapped_token",
]
