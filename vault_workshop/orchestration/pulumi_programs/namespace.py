"""Pulumi helpers for attendee namespaces."""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict

import pulumi
import pulumi_vault as vault


@dataclass
class AttendeeNamespaceSpec:
    """Everything one attendee namespace is built from."""

    attendee_id: str
    suffix: str
    name: str
    parent: str
    username: str
    password: str
    policy_name: str
    email: str
    first_name: str
    last_name: str
    company: str = ""
    story: Dict[str, str] = field(default_factory=dict)

    @property
    def path(self) -> str:
        return f"{self.parent}/{self.name}"

    def export(self) -> Dict[str, Any]:
        return {
            "namespace_path": self.path,
            "email": self.email,
            "first_name": self.first_name,
            "last_name": self.last_name,
            "company": self.company,
        }


def create_namespace(spec: AttendeeNamespaceSpec, provider: pulumi.ProviderResource) -> vault.Namespace:
    """Create ``<parent>/<name>`` for the attendee."""

    return vault.Namespace(
        resource_name=f"{spec.suffix}-namespace",
        path=spec.name,
        namespace=spec.parent,
        custom_metadata={"attendee": spec.attendee_id},
        opts=pulumi.ResourceOptions(provider=provider),
    )


__all__ = ["AttendeeNamespaceSpec", "create_namespace"]
