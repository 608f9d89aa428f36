"""FastAPI dependency injection — registry gateway and lookup orchestrator."""
from __future__ import annotations

from fastapi import Depends, Request

from app.core.settings import get_settings
from app.lookup.orchestrator import LookupOrchestrator
from app.registry.gateway import RegistryGateway, UnavailableGateway


def get_registry_gateway(request: Request) -> RegistryGateway:
    """Return the gateway created by the application lifespan."""
    gateway = getattr(request.app.state, "registry_gateway", None)
    if gateway is None:
        return UnavailableGateway("Registry gateway has not been started")
    return gateway


def get_lookup_orchestrator(
    gateway: RegistryGateway = Depends(get_registry_gateway),
) -> LookupOrchestrator:
    """Return a LookupOrchestrator bound to the shared gateway."""
    return LookupOrchestrator(gateway, include_details=get_settings().is_development)
