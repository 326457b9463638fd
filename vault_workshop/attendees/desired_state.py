"""Generation, serialization and loading of the desired attendee state."""
from __future__ import annotations

import json
import logging
from collections import OrderedDict
from pathlib import Path
from typing import Any, Dict, List, Sequence

from ..errors import DuplicateAttendeeError, InvalidInputError
from .identifiers import assign_identities, attendee_id
from .models import AttendeeEntry, AttendeeRecord, DesiredState

LOGGER = logging.getLogger(__name__)


def find_duplicate_ids(records: Sequence[AttendeeRecord]) -> Dict[str, List[str]]:
    seen: "OrderedDict[str, List[str]]" = OrderedDict()
    for record in records:
        seen.setdefault(attendee_id(record.email), []).append(record.email)
    return {key: emails for key, emails in seen.items() if len(emails) > 1}


def drop_duplicate_ids(records: Sequence[AttendeeRecord]) -> List[AttendeeRecord]:
    kept: List[AttendeeRecord] = []
    seen = set()
    for record in records:
        key = attendee_id(record.email)
        if key in seen:
            LOGGER.warning(
                "Dropping duplicate attendee %s", record.email, extra={"attendee_id": key}
            )
            continue
        seen.add(key)
        kept.append(record)
    return kept


def build_desired_state(
    records: Sequence[AttendeeRecord], *, keep_first_duplicate: bool = False
) -> DesiredState:
    """Build the canonical attendee map from raw records.

    Records sharing an identifier are rejected with ``DuplicateAttendeeError``
    unless ``keep_first_duplicate`` is set, in which case later rows are dropped.
    """

    duplicates = find_duplicate_ids(records)
    if duplicates:
        if not keep_first_duplicate:
            raise DuplicateAttendeeError(duplicates)
        records = drop_duplicate_ids(records)

    entries = [
        AttendeeEntry(
            id=identity.id,
            email=identity.record.email,
            first_name=identity.record.first_name,
            last_name=identity.record.last_name,
            company=identity.record.company,
            namespace_suffix=identity.namespace_suffix,
        )
        for identity in assign_identities(records)
    ]
    LOGGER.info("Built desired state", extra={"attendees": len(entries)})
    return DesiredState.from_entries(entries)


def render_desired_state(state: DesiredState) -> str:
    return json.dumps(state.to_dict(), indent=2, ensure_ascii=False) + "\n"


def write_desired_state(state: DesiredState, path: Path) -> Path:
    """Replace the desired-state file wholesale."""

    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(render_desired_state(state), encoding="utf-8")
    LOGGER.info("Wrote desired state", extra={"path": str(path), "attendees": len(state)})
    return path


def _read_json(path: Path) -> Any:
    if not path.is_file():
        raise InvalidInputError(
            f"Input file '{path}' not found",
            remediation="Run: vault-workshop prepare <tickets.csv>",
        )
    try:
        return json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:
        raise InvalidInputError(
            f"'{path}' is not valid JSON: {exc}",
            remediation="Regenerate it with: vault-workshop prepare <tickets.csv>",
        ) from exc


def _text(value: Any) -> str:
    return "" if value is None else str(value)


def desired_state_from_dict(payload: Any, source: str = "<memory>") -> DesiredState:
    if not isinstance(payload, dict) or not isinstance(payload.get("attendees"), dict):
        raise InvalidInputError(f"'{source}' has no top-level 'attendees' mapping")
    entries: List[AttendeeEntry] = []
    for key, value in payload["attendees"].items():
        if not isinstance(value, dict):
            raise InvalidInputError(f"'{source}': attendee '{key}' is not an object")
        suffix = value.get("namespace_suffix")
        entries.append(
            AttendeeEntry(
                id=str(key),
                email=_text(value.get("email")),
                first_name=_text(value.get("first_name")),
                last_name=_text(value.get("last_name")),
                company=_text(value.get("company")),
                namespace_suffix=str(suffix) if suffix else None,
            )
        )
    return DesiredState.from_entries(entries)


def load_desired_state(path: Path) -> DesiredState:
    """Load a desired-state file written by ``write_desired_state``."""

    return desired_state_from_dict(_read_json(path), source=str(path))


def load_attendee_records(path: Path) -> List[AttendeeRecord]:
    """Load the extended ticket JSON (a list of attendee objects)."""

    payload = _read_json(path)
    if not isinstance(payload, list):
        raise InvalidInputError(f"'{path}' must contain a JSON list of attendees")
    records: List[AttendeeRecord] = []
    for index, item in enumerate(payload):
        if not isinstance(item, dict):
            raise InvalidInputError(f"'{path}': item {index} is not an object")
        email = _text(item.get("email")).strip()
        if not email:
            raise InvalidInputError(f"'{path}': item {index} has no email")
        records.append(
            AttendeeRecord(
                first_name=_text(item.get("first_name")).strip(),
                last_name=_text(item.get("last_name")).strip(),
                email=email,
                company=_text(item.get("company")).strip(),
            )
        )
    return records


__all__ = [
    "build_desired_state",
    "desired_state_from_dict",
    "render_desired_state",
    "write_desired_state",
    "load_desired_state",
    "load_attendee_records",
    "find_duplicate_ids",
]
