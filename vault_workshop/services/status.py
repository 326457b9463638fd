"""Read-only overview of workshop artifacts and live namespaces."""
from __future__ import annotations

import csv
import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

from ..attendees.desired_state import load_desired_state
from ..attendees.models import DesiredState
from ..config import AppConfig
from ..errors import WorkshopError
from .nuke import expected_namespaces
from .vault_client import WorkshopVaultClient

LOGGER = logging.getLogger(__name__)


@dataclass
class ArtifactStatus:
    name: str
    path: str
    exists: bool
    count: Optional[int] = None
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "path": self.path,
            "exists": self.exists,
            "count": self.count,
            "error": self.error,
        }


@dataclass
class StatusReport:
    parent_namespace: str
    prefix: str
    artifacts: List[ArtifactStatus] = field(default_factory=list)
    desired: List[str] = field(default_factory=list)
    live: Optional[List[str]] = None
    live_error: Optional[str] = None

    @property
    def missing(self) -> List[str]:
        if self.live is None:
            return []
        return [name for name in self.desired if name not in self.live]

    @property
    def orphans(self) -> List[str]:
        if self.live is None:
            return []
        return [name for name in self.live if name not in self.desired]

    @property
    def freshly_nuked(self) -> bool:
        return self.live is not None and not self.live

    def to_dict(self) -> Dict[str, Any]:
        return {
            "parent_namespace": self.parent_namespace,
            "prefix": self.prefix,
            "artifacts": [artifact.to_dict() for artifact in self.artifacts],
            "desired": self.desired,
            "live": self.live,
            "live_error": self.live_error,
            "missing": self.missing,
            "orphans": self.orphans,
            "freshly_nuked": self.freshly_nuked,
        }


def _count_csv_rows(path: Path) -> int:
    with path.open(newline="", encoding="utf-8-sig") as handle:
        rows = sum(1 for row in csv.reader(handle) if row)
    return max(rows - 1, 0)


def _count_json(path: Path) -> int:
    payload = json.loads(path.read_text(encoding="utf-8"))
    if isinstance(payload, dict):
        for key in ("attendees", "emails", "credentials", "tokens"):
            if key in payload:
                return len(payload[key])
    return len(payload)


def _artifact(name: str, path: Path, counter: Callable[[Path], int]) -> ArtifactStatus:
    status = ArtifactStatus(name=name, path=str(path), exists=path.is_file())
    if not status.exists:
        return status
    try:
        status.count = counter(path)
    except (OSError, ValueError, TypeError) as exc:
        status.error = str(exc)
    return status


def collect_artifacts(settings: AppConfig) -> List[ArtifactStatus]:
    paths = settings.paths
    artifacts = [
        _artifact(f"input {path.name}", path, _count_csv_rows)
        for path in sorted(paths.input_dir.glob("*.csv"))
    ]
    if not artifacts:
        artifacts.append(ArtifactStatus(name="input tickets", path=str(paths.input_dir / "*.csv"), exists=False))
    artifacts.extend(
        [
            _artifact("tickets.json", paths.tickets_json, _count_json),
            _artifact("tickets_extended.json", paths.tickets_extended_json, _count_json),
            _artifact("attendees.json", paths.desired_state, _count_json),
            _artifact("credentials.csv", paths.credentials_csv, _count_csv_rows),
            _artifact("wrapped_story_tokens.csv", paths.tokens_csv, _count_csv_rows),
        ]
    )
    bundles = sorted(paths.output_dir.glob("*.env")) if paths.output_dir.is_dir() else []
    artifacts.append(
        ArtifactStatus(
            name="env bundles",
            path=str(paths.output_dir / "*.env"),
            exists=bool(bundles),
            count=len(bundles),
        )
    )
    return artifacts


def build_status(
    settings: AppConfig,
    vault_factory: Callable[[AppConfig], WorkshopVaultClient] = lambda s: WorkshopVaultClient.from_config(s.vault),
    state: Optional[DesiredState] = None,
) -> StatusReport:
    """Gather the report; a missing or unreachable Vault only blanks the live section."""

    vault_config = settings.vault
    report = StatusReport(
        parent_namespace=vault_config.parent_namespace,
        prefix=vault_config.namespace_prefix,
        artifacts=collect_artifacts(settings),
    )
    if state is None and settings.paths.desired_state.is_file():
        try:
            state = load_desired_state(settings.paths.desired_state)
        except WorkshopError as exc:
            LOGGER.warning("Desired state unreadable: %s", exc.message)
    if state is not None:
        report.desired = expected_namespaces(state, vault_config.namespace_prefix)

    try:
        vault = vault_factory(settings)
        live = vault.list_namespaces(vault_config.parent_namespace)
    except WorkshopError as exc:
        report.live_error = exc.message
        LOGGER.info("Live namespaces unavailable: %s", exc.message)
        return report
    report.live = [name for name in live if name.startswith(vault_config.namespace_prefix)]
    return report


def render_status(report: StatusReport) -> str:
    lines = ["Artifacts:"]
    for artifact in report.artifacts:
        if not artifact.exists:
            lines.append(f"   [missing] {artifact.path}")
        elif artifact.error:
            lines.append(f"   [invalid] {artifact.path}: {artifact.error}")
        else:
            lines.append(f"   [ok]      {artifact.path} ({artifact.count} entries)")
    lines.append("")
    lines.append(f"Desired namespaces under {report.parent_namespace}/: {len(report.desired)}")
    if report.live is None:
        lines.append(f"Live namespaces: unavailable ({report.live_error})")
        return "\n".join(lines) + "\n"
    lines.append(f"Live {report.prefix}* namespaces: {len(report.live)}")
    for name in report.missing:
        lines.append(f"   missing in Vault: {report.parent_namespace}/{name}")
    for name in report.orphans:
        lines.append(f"   orphan in Vault:  {report.parent_namespace}/{name}")
    if report.freshly_nuked:
        lines.append(
            f"No {report.prefix}* namespaces exist in Vault; the workshop looks freshly nuked."
            " Run 'vault-workshop full <tickets.csv>' to provision again."
        )
    return "\n".join(lines) + "\n"


__all__ = ["ArtifactStatus", "StatusReport", "build_status", "collect_artifacts", "render_status"]
