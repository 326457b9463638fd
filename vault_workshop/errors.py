"""Exception hierarchy shared by every workshop component."""
from __future__ import annotations

from typing import Optional


class WorkshopError(Exception):
    """Base class for failures that end a command with a diagnostic."""

    exit_code = 1

    def __init__(self, message: str, remediation: Optional[str] = None) -> None:
        super().__init__(message)
        self.message = message
        self.remediation = remediation


class ConfigurationError(WorkshopError):
    """Required configuration, file or binary is missing."""


class NukeNotAllowedError(ConfigurationError):
    """Destructive operation attempted without the allow-flag."""


class InvalidInputError(WorkshopError):
    """An input document is not well-formed."""


class DuplicateAttendeeError(InvalidInputError):
    """Two attendee records resolve to the same identifier."""

    def __init__(self, duplicates: dict) -> None:
        listing = ", ".join(
            f"{attendee_id} ({', '.join(emails)})" for attendee_id, emails in duplicates.items()
        )
        super().__init__(
            f"Duplicate attendee identifiers in input: {listing}",
            remediation="Remove the duplicate rows from the ticket export or re-run with --keep-first-duplicate",
        )
        self.duplicates = duplicates


class RemoteUnavailableError(WorkshopError):
    """The Vault cluster cannot be reached or rejected the admin credential."""


class VaultRequestError(WorkshopError):
    """A single Vault request was rejected."""

    def __init__(self, action: str, error: Exception) -> None:
        super().__init__(f"{action} failed: {error}")
        self.action = action
        self.error = error


class ProvisioningError(WorkshopError):
    """The provisioning engine failed to reconcile the desired state."""


class PerAttendeeError(WorkshopError):
    """One attendee's step failed; the batch carries on without it."""

    def __init__(self, attendee_id: str, message: str) -> None:
        super().__init__(f"{attendee_id}: {message}")
        self.attendee_id = attendee_id
        self.reason = message


class ConfirmationRejectedError(WorkshopError):
    """The operator did not confirm a destructive action."""


class AlreadyConsumedError(WorkshopError):
    """A wrapped token was already unwrapped, has expired or never existed."""

    exit_code = 2


__all__ = [
    "WorkshopError",
    "ConfigurationError",
    "NukeNotAllowedError",
    "InvalidInputError",
    "DuplicateAttendeeError",
    "RemoteUnavailableError",
    "VaultRequestError",
    "ProvisioningError",
    "PerAttendeeError",
    "ConfirmationRejectedError",
    "AlreadyConsumedError",
]
