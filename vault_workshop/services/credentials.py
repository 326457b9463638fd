"""Per-attendee login credentials and environment bundles."""
from __future__ import annotations

import logging
from pathlib import Path
from typing import List, Optional

from ..attendees.identifiers import resolve_namespace_suffix
from ..attendees.models import CREDENTIAL_FIELDS, AttendeeEntry, CredentialBundle, DesiredState
from ..config import VaultConfig
from ..errors import PerAttendeeError
from .batch import BatchResult, run_batch
from .exports import write_exports

LOGGER = logging.getLogger(__name__)

PASSWORD_TEMPLATE = "VaultWorkshop-{username}!"
DEFAULT_TFE_HOST = "app.terraform.io"


def workshop_password(username: str) -> str:
    return PASSWORD_TEMPLATE.format(username=username)


def render_env_bundle(bundle: CredentialBundle) -> str:
    """Render the ``.env`` file an attendee sources before logging in."""

    entry = bundle.entry
    lines: List[str] = [f"# Vault workshop environment for {entry.first_name} {entry.last_name} <{entry.email}>"]
    if bundle.vault_address:
        lines.append(f'VAULT_ADDR="{bundle.vault_address}"')
    else:
        lines.append("# VAULT_ADDR not resolved from the instructor configuration - set it manually:")
        lines.append('# VAULT_ADDR="https://your-hcp-vault-address:8200"')
    lines.extend(
        [
            f'VAULT_NAMESPACE="{bundle.namespace}"',
            f'VAULT_USERNAME="{bundle.username}"',
            f'VAULT_PASSWORD="{bundle.password}"',
            "",
            "# Optional: Terraform Cloud / HCP Terraform (to be filled by attendee)",
            f'TFE_HOST="{DEFAULT_TFE_HOST}"',
            'TFE_TOKEN=""',
            "",
            "# Optional: Terraform variables if they run TF against Vault",
            f'TF_VAR_vault_address="{bundle.vault_address or ""}"',
            '# TF_VAR_vault_admin_token=""  # do NOT set this to the global admin token',
        ]
    )
    return "\n".join(lines) + "\n"


class CredentialIssuer:
    """Derive credentials from the desired state and write them out."""

    def __init__(
        self,
        vault_config: VaultConfig,
        output_dir: Path,
        vault_address: Optional[str] = None,
    ) -> None:
        self._vault_config = vault_config
        self._output_dir = output_dir
        self._vault_address = vault_address if vault_address is not None else vault_config.address

    def bundle_for(self, entry: AttendeeEntry) -> CredentialBundle:
        username = entry.username
        if not username:
            raise PerAttendeeError(entry.id, "attendee has no first_name to derive a username from")
        suffix = resolve_namespace_suffix(entry)
        return CredentialBundle(
            entry=entry,
            namespace=self._vault_config.namespace_path(suffix),
            namespace_suffix=suffix,
            username=username,
            password=workshop_password(username),
            vault_address=self._vault_address,
        )

    def env_file_path(self, bundle: CredentialBundle) -> Path:
        return self._output_dir / f"{bundle.namespace_suffix}.env"

    def issue(self, entry: AttendeeEntry) -> CredentialBundle:
        """Build one attendee's bundle and write its ``.env`` file."""

        bundle = self.bundle_for(entry)
        path = self.env_file_path(bundle)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(render_env_bundle(bundle), encoding="utf-8")
        except OSError as exc:
            raise PerAttendeeError(entry.id, f"could not write {path}: {exc}") from exc
        LOGGER.info("Wrote env file %s", path.name, extra={"attendee_id": entry.id})
        return bundle

    def issue_all(self, state: DesiredState, csv_path: Path, json_path: Path) -> BatchResult[CredentialBundle]:
        """Issue credentials for every attendee, then write the aggregate exports."""

        LOGGER.info(
            "Generating workshop credentials",
            extra={"attendees": len(state), "csv": str(csv_path), "json": str(json_path)},
        )
        result = run_batch(state, self.issue)
        write_exports(
            [bundle.export_row() for bundle in result.succeeded],
            CREDENTIAL_FIELDS,
            csv_path,
            json_path,
            "credentials",
        )
        return result


__all__ = ["CredentialIssuer", "workshop_password", "render_env_bundle"]
