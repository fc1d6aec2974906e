"""Caller identity resolution for admin requests."""

from collections.abc import Awaitable, Callable

from aiohttp import web

from chatbridge.config.models import AuthConfig
from chatbridge.domain.entities.caller import Caller

EMAIL_HEADER = "X-User-Email"
FULL_NAME_HEADER = "X-User-FullName"
POSITIONS_HEADER = "X-User-Positions"

CALLER_KEY = "caller"

Handler = Callable[[web.Request], Awaitable[web.StreamResponse]]


def resolve_caller(request: web.Request, config: AuthConfig) -> Caller | None:
    """Build the caller from identity headers set by the fronting proxy.

    Args:
        request: The incoming request.
        config: Auth configuration providing the fallback identity.

    Returns:
        The caller, or None when neither a header nor a default is present.
    """
    email = request.headers.get(EMAIL_HEADER, "").strip()
    full_name = request.headers.get(FULL_NAME_HEADER, "").strip()
    if not email:
        if not config.default_email:
            return None
        email = config.default_email
        full_name = full_name or config.default_full_name or ""

    positions = frozenset(
        p.strip()
        for p in request.headers.get(POSITIONS_HEADER, "").split(",")
        if p.strip()
    )
    return Caller(email=email, full_name=full_name or email, position_ids=positions)


def identity_middleware(config: AuthConfig) -> Callable[..., Awaitable[web.StreamResponse]]:
    """Create middleware storing the resolved caller under request["caller"]."""

    @web.middleware
    async def middleware(request: web.Request, handler: Handler) -> web.StreamResponse:
        request[CALLER_KEY] = resolve_caller(request, config)
        return await handler(request)

    return middleware


def get_caller(request: web.Request) -> Caller | None:
    return request.get(CALLER_KEY)
