"""Deterministic attendee identifiers and namespace suffixes."""
from __future__ import annotations

import logging
import re
from collections import OrderedDict
from typing import Dict, Iterable, List, Sequence

from .models import AttendeeEntry, AttendeeIdentity, AttendeeRecord

LOGGER = logging.getLogger(__name__)

_NON_ID_CHARS = re.compile(r"[^a-z0-9-]")


def attendee_id(email: str) -> str:
    """Map an email to its identifier: ``Raymon.Epping@ibm.com`` -> ``raymon-epping-at-ibm-com``."""

    return _NON_ID_CHARS.sub("-", email.strip().lower().replace("@", "-at-"))


def first_lower(record: AttendeeRecord) -> str:
    return record.first_name.lower()


def last_initial(record: AttendeeRecord) -> str:
    return record.last_name.lower()[:1]


def group_by_first_name(records: Iterable[AttendeeRecord]) -> "OrderedDict[str, List[AttendeeRecord]]":
    """Group records by lowercased first name, preserving first-seen order."""

    groups: "OrderedDict[str, List[AttendeeRecord]]" = OrderedDict()
    for record in records:
        groups.setdefault(first_lower(record), []).append(record)
    return groups


def log_duplicate_first_names(groups: Dict[str, List[AttendeeRecord]]) -> None:
    for name, members in groups.items():
        if len(members) < 2:
            continue
        LOGGER.warning(
            'Duplicate first name detected: "%s" (%d attendees)',
            name,
            len(members),
            extra={"first_lower": name, "count": len(members)},
        )
        for member in members:
            LOGGER.warning(
                "   - %s -> %s-%s",
                member.email,
                name,
                last_initial(member),
                extra={"email": member.email},
            )


def assign_identities(records: Sequence[AttendeeRecord]) -> List[AttendeeIdentity]:
    """Compute identity and namespace suffix for every record, in input order.

    A first name held by a single attendee becomes the suffix as-is. When the
    first name is shared, every member of the group gets ``first-<last initial>``.
    If that still collides (same first name and same last initial) the later
    attendees receive a numeric tail, ``raymon-e2``, ``raymon-e3``, and the
    collision is logged.
    """

    groups = group_by_first_name(records)
    log_duplicate_first_names(groups)

    taken: Dict[str, str] = {}
    identities: List[AttendeeIdentity] = []
    for record in records:
        name = first_lower(record)
        initial = last_initial(record)
        if len(groups[name]) > 1:
            base = f"{name}-{initial}"
        else:
            base = name
        suffix = base
        counter = 2
        while suffix in taken:
            suffix = f"{base}{counter}"
            counter += 1
        if suffix != base:
            LOGGER.warning(
                "Namespace suffix %s already assigned to %s; using %s for %s",
                base,
                taken[base],
                suffix,
                record.email,
                extra={"suffix": suffix, "email": record.email},
            )
        taken[suffix] = record.email
        identities.append(
            AttendeeIdentity(
                record=record,
                id=attendee_id(record.email),
                first_lower=name,
                last_initial=initial,
                namespace_suffix=suffix,
            )
        )
    return identities


def resolve_namespace_suffix(entry: AttendeeEntry) -> str:
    """Suffix of an entry, falling back to its username when the entry predates suffixes."""

    if entry.namespace_suffix:
        return entry.namespace_suffix
    fallback = entry.username
    LOGGER.warning(
        "No namespace_suffix for %s, falling back to '%s'",
        entry.email,
        fallback,
        extra={"attendee_id": entry.id, "suffix": fallback},
    )
    return fallback


__all__ = [
    "attendee_id",
    "assign_identities",
    "group_by_first_name",
    "resolve_namespace_suffix",
]
