"""
Service dependencies for FastAPI routes

Services are built once in the application lifespan and stored on
``app.state.services``. Routes receive them through ``get_services`` so
tests can swap in fakes with ``app.dependency_overrides``.
"""

from typing import Annotated

from fastapi import Depends, HTTPException, Request, status

from chatgenius.services.container import ServiceContainer


def get_services(request: Request) -> ServiceContainer:
    services = getattr(request.app.state, "services", None)
    if services is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Services are not initialized",
        )
    return services


Services = Annotated[ServiceContainer, Depends(get_services)]
