"""Domain models for workshop attendees and the artifacts issued to them."""
from __future__ import annotations

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Dict, Iterator, List, Mapping, Optional


@dataclass(frozen=True)
class AttendeeRecord:
    """One row of the ticket export."""

    first_name: str
    last_name: str
    email: str
    company: str = ""

    def to_dict(self) -> Dict[str, str]:
        return {
            "first_name": self.first_name,
            "last_name": self.last_name,
            "email": self.email,
            "company": self.company,
        }


@dataclass(frozen=True)
class AttendeeIdentity:
    """Identifier and namespace suffix derived for one attendee."""

    record: AttendeeRecord
    id: str
    first_lower: str
    last_initial: str
    namespace_suffix: str


@dataclass(frozen=True)
class AttendeeEntry:
    """One value of the desired-state map."""

    id: str
    email: str
    first_name: str
    last_name: str
    company: str = ""
    namespace_suffix: Optional[str] = None

    @property
    def username(self) -> str:
        return self.first_name.lower()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "email": self.email,
            "first_name": self.first_name,
            "last_name": self.last_name,
            "company": self.company,
            "namespace_suffix": self.namespace_suffix,
        }


@dataclass(frozen=True)
class DesiredState:
    """Immutable attendee map keyed by identifier, in input order."""

    _entries: Mapping[str, AttendeeEntry] = field(default_factory=dict)

    def __post_init__(self) -> None:
        object.__setattr__(self, "_entries", MappingProxyType(dict(self._entries)))

    @classmethod
    def from_entries(cls, entries: List[AttendeeEntry]) -> "DesiredState":
        return cls({entry.id: entry for entry in entries})

    @property
    def attendees(self) -> Mapping[str, AttendeeEntry]:
        return self._entries

    def __iter__(self) -> Iterator[AttendeeEntry]:
        return iter(self._entries.values())

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, attendee_id: object) -> bool:
        return attendee_id in self._entries

    def get(self, attendee_id: str) -> Optional[AttendeeEntry]:
        return self._entries.get(attendee_id)

    def to_dict(self) -> Dict[str, Any]:
        return {"attendees": {key: entry.to_dict() for key, entry in self._entries.items()}}


@dataclass(frozen=True)
class CredentialBundle:
    """Login material handed to one attendee."""

    entry: AttendeeEntry
    namespace: str
    namespace_suffix: str
    username: str
    password: str
    vault_address: Optional[str] = None

    def export_row(self) -> Dict[str, str]:
        return {
            "first_name": self.entry.first_name,
            "last_name": self.entry.last_name,
            "email": self.entry.email,
            "namespace": self.namespace,
            "namespace_suffix": self.namespace_suffix,
            "username": self.username,
            "password": self.password,
        }


@dataclass(frozen=True)
class WrappedStoryToken:
    """Single-use token revealing one attendee's story secret."""

    entry: AttendeeEntry
    namespace: str
    namespace_suffix: str
    username: str
    wrapped_token: str

    def export_row(self) -> Dict[str, str]:
        return {
            "first_name": self.entry.first_name,
            "last_name": self.entry.last_name,
            "email": self.entry.email,
            "namespace": self.namespace,
            "namespace_suffix": self.namespace_suffix,
            "username": self.username,
            "wrapped_token": self.wrapped_token,
        }


CREDENTIAL_FIELDS = [
    "first_name",
    "last_name",
    "email",
    "namespace",
    "namespace_suffix",
    "username",
    "password",
]

TOKEN_FIELDS = [
    "first_name",
    "last_name",
    "email",
    "namespace",
    "namespace_suffix",
    "username",
    "wrapped_token",
]


__all__ = [
    "AttendeeRecord",
    "AttendeeIdentity",
    "AttendeeEntry",
    "DesiredState",
    "CredentialBundle",
    "WrappedStoryToken",
    "CREDENTIAL_FIELDS",
    "TOKEN_FIELDS",
]
