"""Shared router dependencies and response helpers."""

from fastapi import HTTPException, Request
from fastapi.responses import JSONResponse

from services.container import ServiceContainer


def get_services(request: Request) -> ServiceContainer:
    """Resolve the service container built during application startup."""
    services = getattr(request.app.state, "services", None)
    if services is None:
        raise HTTPException(status_code=503, detail="Services are not initialized.")
    return services


def error_response(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"success": False, "error": message})


def parse_fid(raw: str) -> int:
    """Parse a path fid; raises ValueError for anything but a positive integer."""
    fid = int(str(raw).strip())
    if fid <= 0:
        raise ValueError("fid must be positive")
    return fid
