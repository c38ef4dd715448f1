"""Caller identity: authenticated user id from a bearer JWT, else client IP."""

import logging
from dataclasses import dataclass

import jwt
from fastapi import Request

logger = logging.getLogger(__name__)

JWT_ALGORITHM = "HS256"


@dataclass(frozen=True)
class Identity:
    ip: str
    user_id: str | None = None

    @property
    def is_authenticated(self) -> bool:
        return self.user_id is not None

    def key(self, ip_only: bool = False) -> str:
        """Rate-limit key: user:<id> when signed in, ip:<address> otherwise."""
        if self.user_id and not ip_only:
            return f"user:{self.user_id}"
        return f"ip:{self.ip}"


def client_ip(request: Request) -> str:
    """Best-effort client address (Cloudflare -> forwarded -> real-ip -> peer)."""
    headers = request.headers
    forwarded = headers.get("x-forwarded-for", "").split(",")[0].strip()
    peer = request.client.host if request.client else ""
    return (
        headers.get("cf-connecting-ip")
        or forwarded
        or headers.get("x-real-ip")
        or peer
        or "unknown"
    )


def bearer_token(request: Request) -> str | None:
    parts = request.headers.get("Authorization", "").split()
    if len(parts) == 2 and parts[0].lower() == "bearer":
        return parts[1]
    return None


def decode_user_id(token: str, secret: str, audience: str = "authenticated") -> str | None:
    """Validate a Supabase-style access token and return its subject.

    Invalid, expired or subject-less tokens yield None (the caller is a guest).
    """
    try:
        payload = jwt.decode(
            token,
            secret,
            algorithms=[JWT_ALGORITHM],
            audience=audience,
            options={"require": ["exp", "sub"]},
        )
    except jwt.InvalidTokenError as e:
        logger.warning(f"Rejected bearer token: {e}")
        return None
    return payload.get("sub") or None


def resolve_identity(request: Request, secret: str, audience: str = "authenticated") -> Identity:
    ip = client_ip(request)
    token = bearer_token(request)
    if not token:
        return Identity(ip=ip)
    if not secret:
        logger.warning("Bearer token ignored: no JWT secret configured")
        return Identity(ip=ip)
    return Identity(ip=ip, user_id=decode_user_id(token, secret, audience))
