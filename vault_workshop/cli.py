"""Command line entrypoint for instructors and attendees."""
from __future__ import annotations

import argparse
import getpass
import logging
import os
import sys
from pathlib import Path
from typing import Callable, Dict, Optional

from ._version import __version__
from .attendees.desired_state import (
    build_desired_state,
    load_attendee_records,
    load_desired_state,
    write_desired_state,
)
from .attendees.models import DesiredState
from .attendees.tickets import load_ticket_export, parse_domains, write_ticket_documents
from .config import AppConfig, get_settings
from .errors import ConfigurationError, InvalidInputError, WorkshopError
from .events.publisher import build_audit_publisher
from .orchestration.main import WorkshopOrchestrator
from .services.credentials import CredentialIssuer
from .services.login import login, resolve_login_context
from .services.nuke import NukeEngine, require_nuke_allowed
from .services.packaging import build_package
from .services.preflight import render_report, run_preflight
from .services.status import build_status, render_status
from .services.tokens import TokenIssuer
from .services.unwrap import TokenUnwrapper, render_unwrap_result, resolve_wrapped_token
from .services.vault_client import WorkshopVaultClient

LOGGER = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s %(name)s %(levelname)s %(message)s"
FULL_STEPS = 7


def _vault(settings: AppConfig) -> WorkshopVaultClient:
    return WorkshopVaultClient.from_config(settings.vault)


def _step(number: int, title: str) -> None:
    print(f"[{number}/{FULL_STEPS}] {title}")


def resolve_csv(argument: str, settings: AppConfig) -> Path:
    """Look inside the input directory first, then take the path as given."""

    candidate = settings.paths.input_dir / argument
    if candidate.is_file():
        return candidate
    path = Path(argument)
    if path.is_file():
        return path
    raise InvalidInputError(
        f"CSV file not found: {argument} (looked in {settings.paths.input_dir}/ and as given)",
        remediation=f"Place the ticket export in {settings.paths.input_dir}/ or pass its full path",
    )


def _prepare_state(args: argparse.Namespace, settings: AppConfig) -> DesiredState:
    paths = settings.paths
    csv_path = resolve_csv(args.csv, settings)
    records = load_ticket_export(csv_path, parse_domains(args.domain))
    write_ticket_documents(records, paths.tickets_json, paths.tickets_extended_json)
    state = build_desired_state(
        load_attendee_records(paths.tickets_extended_json),
        keep_first_duplicate=getattr(args, "keep_first_duplicate", False),
    )
    write_desired_state(state, paths.desired_state)
    return state


def _load_state(settings: AppConfig) -> DesiredState:
    return load_desired_state(settings.paths.desired_state)


def _print_failures(label: str, result) -> None:
    print(f"{label}: {len(result.succeeded)} issued, {len(result.failed)} skipped")
    for failure in result.failed:
        print(f"   skipped {failure.attendee_id}: {failure.reason}")


# ----------------------------------------------------------------------
# Commands
# ----------------------------------------------------------------------
def cmd_prepare(args: argparse.Namespace, settings: AppConfig) -> int:
    state = _prepare_state(args, settings)
    print(f"Wrote {settings.paths.desired_state} with {len(state)} attendees")
    return 0


def cmd_full(args: argparse.Namespace, settings: AppConfig) -> int:
    audit = build_audit_publisher(settings)

    _step(1, "Reading ticket export")
    _step(2, "Generating desired state")
    state = _prepare_state(args, settings)
    print(f"      {len(state)} attendees in {settings.paths.desired_state}")

    if args.skip_tf:
        _step(3, "Preflight skipped (--skip-tf)")
        _step(4, "Provisioning skipped (--skip-tf)")
    else:
        _step(3, "Running preflight checks")
        report = run_preflight(settings)
        print(render_report(report), end="")
        report.raise_for_failures()
        _step(4, "Provisioning attendee namespaces")
        namespaces = WorkshopOrchestrator(settings, audit).apply(state)
        print(f"      {len(namespaces)} namespaces provisioned")

    if args.skip_creds:
        _step(5, "Credentials skipped (--skip-creds)")
    else:
        _step(5, "Generating credentials")
        result = CredentialIssuer(settings.vault, settings.paths.output_dir).issue_all(
            state, settings.paths.credentials_csv, settings.paths.credentials_json
        )
        _print_failures("      credentials", result)

    if args.skip_wrap:
        _step(6, "Wrapped tokens skipped (--skip-wrap)")
    else:
        _step(6, "Issuing wrapped story tokens")
        result = TokenIssuer(_vault(settings), settings.vault, settings.wrap_ttl, audit).issue_all(
            state, settings.paths.tokens_csv, settings.paths.tokens_json
        )
        _print_failures("      wrapped tokens", result)

    _step(7, "Done")
    print(f"Artifacts are in {settings.paths.output_dir}/")
    return 0


def cmd_preflight(args: argparse.Namespace, settings: AppConfig) -> int:
    report = run_preflight(settings)
    print(render_report(report), end="")
    report.raise_for_failures()
    print("Preflight passed")
    return 0


def cmd_status(args: argparse.Namespace, settings: AppConfig) -> int:
    print(render_status(build_status(settings)), end="")
    return 0


def _confirm(prompt: str) -> str:
    return input(prompt)


def _nuke_engine(settings: AppConfig) -> NukeEngine:
    return NukeEngine(_vault(settings), settings, _confirm, build_audit_publisher(settings))


def cmd_nuke(args: argparse.Namespace, settings: AppConfig) -> int:
    require_nuke_allowed(settings)
    state = _load_state(settings)
    report = _nuke_engine(settings).run(state, dry_run=args.dry_run, include_orphans=args.include_orphans)
    if report.dry_run or not report.plan.targets:
        return 0
    print(f"Deleted {len(report.deleted)} namespaces, {len(report.failed)} failed")
    for name, error in report.failed:
        print(f"   failed {report.plan.qualified(name)}: {error}")
    print("Re-apply with 'vault-workshop full <tickets.csv>' to recreate them.")
    return 0


def cmd_reset(args: argparse.Namespace, settings: AppConfig) -> int:
    require_nuke_allowed(settings)
    state = _load_state(settings)
    namespace = _nuke_engine(settings).reset_attendee(state, args.email)
    print(f"Deleted {namespace}; re-applying the workshop stack")
    WorkshopOrchestrator(settings, build_audit_publisher(settings)).apply(state)
    print(f"Recreated {namespace}")
    return 0


def cmd_unwrap(args: argparse.Namespace, settings: AppConfig) -> int:
    token = resolve_wrapped_token(args.token, os.environ, sys.stdin)
    address = os.environ.get("VAULT_ADDR") or settings.vault.address
    if not address:
        raise ConfigurationError(
            "VAULT_ADDR is not set",
            remediation="Source your workshop bundle first: set -a; source <bundle>.env; set +a",
        )
    vault = WorkshopVaultClient(address, timeout=settings.vault.timeout, verify=settings.vault.verify)
    result = TokenUnwrapper(vault, os.environ.get("VAULT_NAMESPACE") or None).unwrap(token)
    print(render_unwrap_result(result), end="")
    return 0


def cmd_login(args: argparse.Namespace, settings: AppConfig) -> int:
    bundle = Path(args.bundle) if args.bundle else None
    context = resolve_login_context(os.environ, bundle)
    token = login(
        context,
        getpass.getpass,
        lambda address: WorkshopVaultClient(address, timeout=settings.vault.timeout, verify=settings.vault.verify),
    )
    print(f"Logged in as {context.username} in {context.namespace}")
    print(f"export VAULT_TOKEN={token}")
    return 0


def cmd_package(args: argparse.Namespace, settings: AppConfig) -> int:
    tickets = resolve_csv(args.csv, settings) if args.csv else None
    destination = Path(args.destination) if args.destination else None
    path = build_package(settings.paths, destination=destination, tickets_csv=tickets)
    print(f"Created {path}")
    return 0


def cmd_serve(args: argparse.Namespace, settings: AppConfig) -> int:
    import uvicorn

    from .main import create_app

    uvicorn.run(create_app(settings), host=args.host, port=args.port, log_level=settings.logging.level.lower())
    return 0


COMMANDS: Dict[str, Callable[[argparse.Namespace, AppConfig], int]] = {
    "prepare": cmd_prepare,
    "full": cmd_full,
    "preflight": cmd_preflight,
    "status": cmd_status,
    "nuke": cmd_nuke,
    "reset": cmd_reset,
    "unwrap": cmd_unwrap,
    "login": cmd_login,
    "package": cmd_package,
    "serve": cmd_serve,
}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="vault-workshop",
        description="Provision, credential and tear down Vault workshop namespaces.",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("--log-level", default=None, help="Override WORKSHOP_LOGGING__LEVEL")

    subs = parser.add_subparsers(dest="command", help="Subcommand")

    # -- prepare -------------------------------------------------------------
    p_prep = subs.add_parser("prepare", help="Ticket export to desired state")
    p_prep.add_argument("csv", help="Ticket export (looked up in the input directory first)")
    p_prep.add_argument("--domain", default=None, help="Comma-separated email domains to keep")
    p_prep.add_argument("--keep-first-duplicate", action="store_true",
                        help="Drop later rows sharing an email instead of failing")

    # -- full ----------------------------------------------------------------
    p_full = subs.add_parser("full", help="Prepare, provision, issue credentials and wrapped tokens")
    p_full.add_argument("csv", help="Ticket export (looked up in the input directory first)")
    p_full.add_argument("--domain", default=None, help="Comma-separated email domains to keep")
    p_full.add_argument("--keep-first-duplicate", action="store_true",
                        help="Drop later rows sharing an email instead of failing")
    p_full.add_argument("--skip-tf", action="store_true", help="Skip preflight and the provisioning apply")
    p_full.add_argument("--skip-creds", action="store_true", help="Skip credential generation")
    p_full.add_argument("--skip-wrap", action="store_true", help="Skip wrapped token issuance")

    subs.add_parser("preflight", help="Check configuration, tooling and the cluster")
    subs.add_parser("status", help="Show artifacts and live namespaces")

    # -- nuke ----------------------------------------------------------------
    p_nuke = subs.add_parser("nuke", help="Delete every workshop namespace from Vault")
    p_nuke.add_argument("--dry-run", action="store_true", help="Print the plan and stop")
    p_nuke.add_argument("--include-orphans", action="store_true",
                        help="Also delete prefixed namespaces missing from the desired state")

    p_reset = subs.add_parser("reset", help="Delete and recreate one attendee's namespace")
    p_reset.add_argument("email", help="Attendee email")

    p_unwrap = subs.add_parser("unwrap", help="Reveal the story behind a wrapped token")
    p_unwrap.add_argument("token", nargs="?", default=None,
                          help="Wrapped token (or WRAPPED_TOKEN, or piped on stdin)")

    p_login = subs.add_parser("login", help="Log in with an attendee bundle")
    p_login.add_argument("bundle", nargs="?", default=None, help="Path to the attendee .env bundle")

    p_pkg = subs.add_parser("package", help="Zip bundles and metadata for distribution")
    p_pkg.add_argument("--csv", default=None, help="Ticket export to include (default: input/tickets.csv)")
    p_pkg.add_argument("--destination", default=None, help="Directory receiving the archive")

    p_serve = subs.add_parser("serve", help="Serve the read-only status API")
    p_serve.add_argument("--host", default="127.0.0.1")
    p_serve.add_argument("--port", type=int, default=8000)

    return parser


def main(argv: Optional[list] = None, settings: Optional[AppConfig] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        return 1

    try:
        settings = settings or get_settings()
    except ValueError as exc:
        print(f"ERROR: invalid configuration: {exc}", file=sys.stderr)
        return 1
    logging.basicConfig(level=(args.log_level or settings.logging.level).upper(), format=LOG_FORMAT)

    try:
        return COMMANDS[args.command](args, settings)
    except WorkshopError as exc:
        LOGGER.debug("Command failed", exc_info=True)
        print(f"ERROR: {exc.message}", file=sys.stderr)
        if exc.remediation:
            print(f"  -> {exc.remediation}", file=sys.stderr)
        return exc.exit_code
    except KeyboardInterrupt:
        print("Interrupted", file=sys.stderr)
        return 130


__all__ = ["build_parser", "main", "resolve_csv"]
