"""Issuance of single-use wrapped story tokens."""
from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

from ..attendees.identifiers import resolve_namespace_suffix
from ..attendees.models import TOKEN_FIELDS, AttendeeEntry, DesiredState, WrappedStoryToken
from ..config import VaultConfig
from ..errors import PerAttendeeError, VaultRequestError
from ..events.publisher import AuditEventPublisher
from .batch import BatchResult, run_batch
from .exports import write_exports
from .vault_client import WorkshopVaultClient

LOGGER = logging.getLogger(__name__)

# API path of ``secret/story`` on a KV-v2 mount
STORY_PATH = "secret/data/story"


class TokenIssuer:
    """Read each attendee's story with the admin token and wrap it."""

    def __init__(
        self,
        vault: WorkshopVaultClient,
        vault_config: VaultConfig,
        wrap_ttl: str = "60m",
        audit_publisher: Optional[AuditEventPublisher] = None,
    ) -> None:
        self._vault = vault
        self._vault_config = vault_config
        self._wrap_ttl = wrap_ttl
        self._audit_publisher = audit_publisher

    def issue(self, entry: AttendeeEntry) -> WrappedStoryToken:
        """Read and wrap one story; the token is only returned once both succeeded."""

        username = entry.username
        if not username and not entry.namespace_suffix:
            raise PerAttendeeError(entry.id, "attendee has neither namespace_suffix nor first_name")
        suffix = resolve_namespace_suffix(entry)
        namespace = self._vault_config.namespace_path(suffix)
        LOGGER.info(
            "Generating wrapped token for %s %s <%s> in %s",
            entry.first_name,
            entry.last_name,
            entry.email,
            namespace,
            extra={"attendee_id": entry.id, "namespace": namespace},
        )
        try:
            wrap_info = self._vault.read_wrapped(namespace, STORY_PATH, self._wrap_ttl)
        except VaultRequestError as exc:
            raise PerAttendeeError(entry.id, f"{exc.action} in {namespace}: {exc.error}") from exc
        return WrappedStoryToken(
            entry=entry,
            namespace=namespace,
            namespace_suffix=suffix,
            username=username,
            wrapped_token=wrap_info["token"],
        )

    def issue_all(
        self, state: DesiredState, csv_path: Path, json_path: Path
    ) -> BatchResult[WrappedStoryToken]:
        """Issue a token per attendee and write the aggregate exports.

        The admin token is verified first; a rejected token aborts the run
        before any attendee is processed.
        """

        self._vault.verify_token()
        LOGGER.info(
            "Issuing wrapped story tokens",
            extra={"attendees": len(state), "wrap_ttl": self._wrap_ttl},
        )
        result = run_batch(state, self.issue)
        write_exports(
            [token.export_row() for token in result.succeeded],
            TOKEN_FIELDS,
            csv_path,
            json_path,
            "tokens",
        )
        if self._audit_publisher is not None:
            self._audit_publisher.publish(
                subject=self._vault_config.parent_namespace,
                action="ISSUE_WRAPPED_TOKENS",
                outcome="SUCCESS" if result.ok else "PARTIAL",
                details={
                    "issued": len(result.succeeded),
                    "failed": [failure.attendee_id for failure in result.failed],
                    "wrapTtl": self._wrap_ttl,
                },
            )
        return result


__all__ = ["TokenIssuer", "STORY_PATH"]
