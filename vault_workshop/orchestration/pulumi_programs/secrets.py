"""Pulumi helpers for the KV-v2 mount and the story secret."""
from __future__ import annotations

import hashlib
import json
from typing import Dict, Sequence

import pulumi
import pulumi_vault as vault

from .namespace import AttendeeNamespaceSpec

KV_MOUNT_PATH = "secret"
STORY_NAME = "story"

STORY_QUOTES: Sequence[str] = (
    "The best way to predict the future is to invent it. - Alan Kay",
    "Simplicity is prerequisite for reliability. - Edsger W. Dijkstra",
    "Security is a process, not a product. - Bruce Schneier",
    "Make it work, make it right, make it fast. - Kent Beck",
    "There is no cloud, it's just someone else's computer.",
    "Trust, but verify.",
    "A secret shared is no longer a secret; a secret wrapped is one you can hand over once.",
    "Any sufficiently advanced technology is indistinguishable from magic. - Arthur C. Clarke",
)


def pick_quote(attendee_id: str, quotes: Sequence[str] = STORY_QUOTES) -> str:
    """Stable quote choice per attendee so re-applies do not rewrite the secret."""

    digest = hashlib.sha256(attendee_id.encode("utf-8")).hexdigest()
    return quotes[int(digest, 16) % len(quotes)]


def build_story(attendee_id: str, first_name: str, last_name: str, email: str) -> Dict[str, str]:
    return {
        "quote": pick_quote(attendee_id),
        "attendee": f"{first_name} {last_name}".strip(),
        "email": email,
    }


def create_kv_mount(
    spec: AttendeeNamespaceSpec, namespace: vault.Namespace, provider: pulumi.ProviderResource
) -> vault.Mount:
    return vault.Mount(
        resource_name=f"{spec.suffix}-kv",
        path=KV_MOUNT_PATH,
        type="kv",
        options={"version": "2"},
        description=f"Workshop secrets for {spec.email}",
        namespace=spec.path,
        opts=pulumi.ResourceOptions(provider=provider, depends_on=[namespace]),
    )


def create_story_secret(
    spec: AttendeeNamespaceSpec, mount: vault.Mount, provider: pulumi.ProviderResource
) -> vault.kv.SecretV2:
    """Write ``secret/story`` holding the attendee's quote."""

    return vault.kv.SecretV2(
        resource_name=f"{spec.suffix}-story",
        mount=mount.path,
        name=STORY_NAME,
        data_json=json.dumps(spec.story),
        namespace=spec.path,
        opts=pulumi.ResourceOptions(provider=provider, depends_on=[mount]),
    )


__all__ = ["build_story", "create_kv_mount", "create_story_secret", "pick_quote", "STORY_QUOTES"]
