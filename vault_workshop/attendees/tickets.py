"""Ticket export ingestion: semicolon CSV in, attendee JSON documents out."""
from __future__ import annotations

import csv
import json
import logging
from pathlib import Path
from typing import Iterable, List, Optional, Sequence

from ..errors import InvalidInputError
from .models import AttendeeRecord

LOGGER = logging.getLogger(__name__)

FIRST_NAME_COLUMN = 0
LAST_NAME_COLUMN = 1
EMAIL_COLUMN = 2
COMPANY_COLUMN = 4


def parse_domains(value: Optional[str]) -> List[str]:
    if not value:
        return []
    return [domain.strip().lower() for domain in value.split(",") if domain.strip()]


def matches_domains(email: str, domains: Sequence[str]) -> bool:
    if not domains:
        return True
    lowered = email.lower()
    return any(domain in lowered for domain in domains)


def _column(row: List[str], index: int) -> str:
    return row[index].strip() if len(row) > index else ""


def load_ticket_export(path: Path, domains: Optional[Sequence[str]] = None) -> List[AttendeeRecord]:
    """Read attendee rows from the ticket export, skipping the header row."""

    if not path.is_file():
        raise InvalidInputError(
            f"Input file '{path}' not found",
            remediation="Place the ticket export in the input directory, e.g. input/tickets.csv",
        )
    domains = list(domains or [])
    records: List[AttendeeRecord] = []
    with path.open("r", encoding="utf-8-sig", newline="") as handle:
        reader = csv.reader(handle, delimiter=";")
        next(reader, None)
        for row in reader:
            email = _column(row, EMAIL_COLUMN)
            if not email:
                continue
            if not matches_domains(email, domains):
                continue
            records.append(
                AttendeeRecord(
                    first_name=_column(row, FIRST_NAME_COLUMN),
                    last_name=_column(row, LAST_NAME_COLUMN),
                    email=email,
                    company=_column(row, COMPANY_COLUMN),
                )
            )
    LOGGER.info(
        "Read ticket export",
        extra={"path": str(path), "attendees": len(records), "domains": domains},
    )
    return records


def write_ticket_documents(
    records: Iterable[AttendeeRecord], emails_path: Path, extended_path: Path
) -> None:
    """Write the plain email list and the extended attendee list."""

    records = list(records)
    emails_path.parent.mkdir(parents=True, exist_ok=True)
    emails = sorted({record.email for record in records})
    emails_path.write_text(json.dumps({"emails": emails}, indent=2) + "\n", encoding="utf-8")
    extended_path.write_text(
        json.dumps([record.to_dict() for record in records], indent=2, ensure_ascii=False) + "\n",
        encoding="utf-8",
    )
    LOGGER.info(
        "Wrote ticket documents",
        extra={"emails": str(emails_path), "extended": str(extended_path)},
    )


__all__ = ["load_ticket_export", "write_ticket_documents", "parse_domains"]
