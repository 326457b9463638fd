"""Lock-step CSV and JSON exports of per-attendee artifacts."""
from __future__ import annotations

import csv
import json
import logging
from pathlib import Path
from typing import Dict, List, Sequence

LOGGER = logging.getLogger(__name__)


def write_exports(
    rows: Sequence[Dict[str, str]],
    fields: List[str],
    csv_path: Path,
    json_path: Path,
    json_key: str,
) -> None:
    """Write the same rows as CSV and as ``{json_key: [...]}`` JSON."""

    csv_path.parent.mkdir(parents=True, exist_ok=True)
    json_path.parent.mkdir(parents=True, exist_ok=True)
    with csv_path.open("w", encoding="utf-8", newline="") as handle:
        writer = csv.DictWriter(handle, fieldnames=fields, lineterminator="\n")
        writer.writeheader()
        for row in rows:
            writer.writerow({name: row.get(name, "") for name in fields})
    payload = {json_key: [{name: row.get(name, "") for name in fields} for row in rows]}
    json_path.write_text(json.dumps(payload, indent=2, ensure_ascii=False) + "\n", encoding="utf-8")
    LOGGER.info(
        "Wrote exports",
        extra={"csv": str(csv_path), "json": str(json_path), "rows": len(rows)},
    )


__all__ = ["write_exports"]
