"""Pulumi helpers for the attendee policy, userpass backend and user."""
from __future__ import annotations

import json

import pulumi
import pulumi_vault as vault

from .namespace import AttendeeNamespaceSpec
from .secrets import KV_MOUNT_PATH

USERPASS_PATH = "userpass"


def render_policy(mount_path: str = KV_MOUNT_PATH) -> str:
    """Full CRUD and list on everything below the KV mount."""

    return (
        f'path "{mount_path}/*" {{\n'
        '  capabilities = ["create", "read", "update", "delete", "list"]\n'
        "}\n"
    )


def create_policy(
    spec: AttendeeNamespaceSpec, namespace: vault.Namespace, provider: pulumi.ProviderResource
) -> vault.Policy:
    return vault.Policy(
        resource_name=f"{spec.suffix}-policy",
        name=spec.policy_name,
        policy=render_policy(),
        namespace=spec.path,
        opts=pulumi.ResourceOptions(provider=provider, depends_on=[namespace]),
    )


def create_userpass_backend(
    spec: AttendeeNamespaceSpec, namespace: vault.Namespace, provider: pulumi.ProviderResource
) -> vault.AuthBackend:
    return vault.AuthBackend(
        resource_name=f"{spec.suffix}-userpass",
        type="userpass",
        path=USERPASS_PATH,
        namespace=spec.path,
        opts=pulumi.ResourceOptions(provider=provider, depends_on=[namespace]),
    )


def create_user(
    spec: AttendeeNamespaceSpec,
    backend: vault.AuthBackend,
    policy: vault.Policy,
    provider: pulumi.ProviderResource,
) -> vault.generic.Endpoint:
    """Create the attendee login bound to the namespace policy."""

    payload = json.dumps({"password": spec.password, "token_policies": [spec.policy_name]})
    return vault.generic.Endpoint(
        resource_name=f"{spec.suffix}-user",
        path=f"auth/{USERPASS_PATH}/users/{spec.username}",
        data_json=pulumi.Output.secret(payload),
        ignore_absent_fields=True,
        namespace=spec.path,
        opts=pulumi.ResourceOptions(provider=provider, depends_on=[backend, policy]),
    )


__all__ = ["create_policy", "create_userpass_backend", "create_user", "render_policy"]
