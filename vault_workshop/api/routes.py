"""Read-only FastAPI routes for the workshop instructor."""
from __future__ import annotations

from typing import Callable, List

from fastapi import APIRouter, Depends, HTTPException, Request, status

from ..attendees.desired_state import load_desired_state
from ..attendees.identifiers import resolve_namespace_suffix
from ..config import AppConfig
from ..errors import InvalidInputError
from ..services.status import build_status
from ..services.vault_client import WorkshopVaultClient

router = APIRouter()


def get_settings_dependency(request: Request) -> AppConfig:
    settings = getattr(request.app.state, "settings", None)
    if settings is None:
        raise RuntimeError("AppConfig dependency not configured")
    return settings


def get_vault_factory(request: Request) -> Callable[[AppConfig], WorkshopVaultClient]:
    factory = getattr(request.app.state, "vault_factory", None)
    if factory is None:
        raise RuntimeError("Vault client factory not configured")
    return factory


@router.get("/health")
def health(settings: AppConfig = Depends(get_settings_dependency)) -> dict:
    return {"status": "ok", "service": settings.service_name}


@router.get("/status")
def workshop_status(
    settings: AppConfig = Depends(get_settings_dependency),
    vault_factory: Callable[[AppConfig], WorkshopVaultClient] = Depends(get_vault_factory),
) -> dict:
    return build_status(settings, vault_factory).to_dict()


@router.get("/attendees")
def attendees(settings: AppConfig = Depends(get_settings_dependency)) -> dict:
    """Attendees of the desired state with their namespaces; never carries passwords."""

    try:
        state = load_desired_state(settings.paths.desired_state)
    except InvalidInputError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=exc.message) from exc
    items: List[dict] = []
    for entry in state:
        suffix = resolve_namespace_suffix(entry)
        items.append(
            {
                "id": entry.id,
                "email": entry.email,
                "first_name": entry.first_name,
                "last_name": entry.last_name,
                "company": entry.company,
                "namespace": settings.vault.namespace_path(suffix),
                "username": entry.username,
            }
        )
    return {"attendees": items}


__all__ = ["router"]
