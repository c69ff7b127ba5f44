"""Authenticated principal for checkout requests.

Token verification happens upstream; the auth layer leaves a ``Principal``
on ``request.state.principal``. Outside production an ``X-User-Id`` header
stands in for it during local development.
"""

from dataclasses import dataclass

from fastapi import Request

from shared.config import Settings


@dataclass(frozen=True)
class Principal:
    user_id: str
    email: str | None = None


def resolve_principal(request: Request, settings: Settings) -> Principal | None:
    principal = getattr(request.state, "principal", None)
    if principal is not None:
        return principal

    if not settings.is_production:
        user_id = request.headers.get("X-User-Id", "").strip()
        if user_id:
            return Principal(user_id=user_id)
    return None
