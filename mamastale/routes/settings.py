"""Health check and rate-limit admission endpoints."""

from fastapi import APIRouter, Depends, HTTPException

from mamastale.identity import Identity

from .deps import admit, current_identity

router = APIRouter()


@router.get("/health")
async def health():
    """Health check."""
    return {"status": "ok"}


@router.post("/admit/{route_class}")
async def admit_request(route_class: str, identity: Identity = Depends(current_identity)):
    """Count one request against a route class limit (like, review, pdf ...).

    Lets the services that own those routes share this process's tables.
    """
    try:
        admitted = admit(route_class, identity)
    except KeyError:
        raise HTTPException(404, "Unknown route class")
    return {"admitted": admitted}
