"""Environment checks run before touching the shared cluster."""
from __future__ import annotations

import logging
import shutil
from dataclasses import dataclass, field
from typing import Callable, List, Optional

from ..config import AppConfig
from ..errors import ConfigurationError, RemoteUnavailableError, WorkshopError
from .vault_client import WorkshopVaultClient

LOGGER = logging.getLogger(__name__)


@dataclass
class CheckResult:
    name: str
    ok: bool
    detail: str = ""
    error: Optional[WorkshopError] = None


@dataclass
class PreflightReport:
    """Outcome of every check; failures are collected, not raised one by one."""

    checks: List[CheckResult] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return all(check.ok for check in self.checks)

    @property
    def failures(self) -> List[CheckResult]:
        return [check for check in self.checks if not check.ok]

    def record(self, name: str, ok: bool, detail: str = "", error: Optional[WorkshopError] = None) -> None:
        self.checks.append(CheckResult(name=name, ok=ok, detail=detail, error=error))

    def raise_for_failures(self) -> None:
        """Raise a ``ConfigurationError`` if anything local is missing, else the first remote failure."""

        failures = self.failures
        if not failures:
            return
        summary = "; ".join(f"{check.name}: {check.detail}" for check in failures)
        remediations = [check.error.remediation for check in failures if check.error and check.error.remediation]
        remediation = " | ".join(dict.fromkeys(remediations)) or None
        if any(isinstance(check.error, ConfigurationError) for check in failures):
            raise ConfigurationError(f"Preflight failed: {summary}", remediation=remediation)
        raise RemoteUnavailableError(f"Preflight failed: {summary}", remediation=remediation)


def render_report(report: PreflightReport) -> str:
    lines = []
    for check in report.checks:
        marker = "OK  " if check.ok else "FAIL"
        lines.append(f"[{marker}] {check.name}" + (f": {check.detail}" if check.detail else ""))
    return "\n".join(lines) + "\n"


def run_preflight(
    settings: AppConfig,
    vault_factory: Callable[[AppConfig], WorkshopVaultClient] = lambda s: WorkshopVaultClient.from_config(s.vault),
    which: Callable[[str], Optional[str]] = shutil.which,
) -> PreflightReport:
    """Check configuration, tooling and the cluster without changing anything."""

    report = PreflightReport()

    if settings.disable_pulumi:
        report.record("pulumi binary", True, "skipped (Pulumi disabled)")
    else:
        location = which("pulumi")
        if location:
            report.record("pulumi binary", True, location)
        else:
            report.record(
                "pulumi binary",
                False,
                "not found on PATH",
                ConfigurationError(
                    "pulumi CLI not found",
                    remediation="Install the Pulumi CLI (https://www.pulumi.com/docs/install/)",
                ),
            )

    try:
        settings.vault.require()
    except ConfigurationError as exc:
        report.record("configuration", False, exc.message, exc)
        return report
    report.record("configuration", True, settings.vault.address or "")

    vault = vault_factory(settings)
    parent = settings.vault.parent_namespace
    checks = (
        ("vault health", lambda: "unsealed, version {}".format(vault.health().get("version", "unknown"))),
        ("admin token", lambda: "lookup-self ok" if vault.verify_token() is not None else ""),
        (
            f"list namespaces under {parent}/",
            lambda: f"{len(vault.list_namespaces(parent))} child namespaces",
        ),
    )
    for name, check in checks:
        try:
            detail = check()
        except WorkshopError as exc:
            LOGGER.debug("Preflight check failed", extra={"check": name, "error": exc.message})
            report.record(name, False, exc.message, exc)
            # later checks depend on a reachable cluster
            if isinstance(exc, RemoteUnavailableError):
                break
            continue
        report.record(name, True, detail)
    return report


__all__ = ["CheckResult", "PreflightReport", "render_report", "run_preflight"]
