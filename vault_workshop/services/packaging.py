"""Zip archive of the artifacts an instructor hands out after a run."""
from __future__ import annotations

import logging
import zipfile
from datetime import datetime
from pathlib import Path
from typing import List, Optional, Tuple

from ..config import PathsConfig
from ..errors import InvalidInputError

LOGGER = logging.getLogger(__name__)


def archive_members(paths: PathsConfig, tickets_csv: Optional[Path] = None) -> List[Tuple[Path, str]]:
    """``(source, arcname)`` pairs for every artifact that exists."""

    bundles = sorted(paths.output_dir.glob("*.env")) if paths.output_dir.is_dir() else []
    if not bundles:
        raise InvalidInputError(
            f"No .env bundles found in {paths.output_dir}",
            remediation="Generate them first with: vault-workshop full <tickets.csv>",
        )
    members = [(bundle, f"env/{bundle.name}") for bundle in bundles]
    optional = [
        (paths.credentials_csv, "meta/credentials.csv"),
        (paths.tokens_csv, "meta/wrapped_story_tokens.csv"),
        (paths.desired_state, "state/attendees.json"),
        (tickets_csv or paths.input_dir / "tickets.csv", "input/tickets.csv"),
    ]
    for source, arcname in optional:
        if source.is_file():
            members.append((source, arcname))
        else:
            LOGGER.warning("%s not found; leaving it out of the package", source)
    return members


def build_package(
    paths: PathsConfig,
    destination: Optional[Path] = None,
    tickets_csv: Optional[Path] = None,
    now: Optional[datetime] = None,
) -> Path:
    """Write ``workshop_package_<timestamp>.zip`` and return its path."""

    members = archive_members(paths, tickets_csv)
    stamp = (now or datetime.now()).strftime("%Y%m%d_%H%M%S")
    target = (destination or Path.cwd()) / f"workshop_package_{stamp}.zip"
    target.parent.mkdir(parents=True, exist_ok=True)
    with zipfile.ZipFile(target, "w", compression=zipfile.ZIP_DEFLATED) as archive:
        for source, arcname in members:
            archive.write(source, arcname)
    LOGGER.info("Created package %s", target, extra={"members": len(members)})
    return target


__all__ = ["archive_members", "build_package"]
