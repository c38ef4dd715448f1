"""Shared endpoint dependencies: caller identity, rate limiting, model client."""

import logging
from collections.abc import Callable

from fastapi import HTTPException, Request

from mamastale.config import get_config
from mamastale.identity import Identity, resolve_identity
from mamastale.llm import LLM, AnthropicLLM
from mamastale.ratelimit import get_limiter, route_settings

logger = logging.getLogger(__name__)


def current_identity(request: Request) -> Identity:
    auth = get_config()["auth"]
    return resolve_identity(request, auth["jwt_secret"], auth.get("jwt_audience", "authenticated"))


def admit(route_class: str, identity: Identity) -> bool:
    """Run the route class limiter for this caller. Raises KeyError if unknown."""
    limiter = get_limiter(route_class)
    settings = route_settings(route_class) or {}
    key = identity.key(ip_only=settings.get("ip_only", False))
    admitted = limiter.admit(key)
    if not admitted:
        logger.warning(f"Rate limit hit: route={route_class} key={key}")
    return admitted


def rate_limited(route_class: str):
    """Dependency factory: resolve the caller and reject with 429 over the limit."""

    async def dependency(request: Request) -> Identity:
        identity = current_identity(request)
        if not admit(route_class, identity):
            raise HTTPException(429, {
                "code": "rate_limited",
                "message": "Too many requests. Please try again shortly.",
            })
        return identity

    return dependency


def get_llm() -> LLM:
    """Build the model client from config. Raises LLMError without an API key."""
    return AnthropicLLM.from_config(get_config())


def llm_factory() -> Callable[[], LLM]:
    """Dependency handing the route a builder, so no client is made for
    requests rejected before the model call."""
    return get_llm
