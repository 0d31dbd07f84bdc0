from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Optional

import jwt
from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from backend.app.settings import Settings

security = HTTPBearer(auto_error=False)

ALL_ROLES = frozenset(
    {"admin", "owner", "staffing_admin", "caregiver", "client", "candidate", "service"}
)
STAFF_ROLES = frozenset({"admin", "owner", "staffing_admin"})


@dataclass(frozen=True)
class AuthContext:
    user_id: str
    roles: set[str]


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=detail)


def _decode_claims(settings: Settings, token: str) -> dict[str, Any]:
    try:
        return jwt.decode(token, settings.jwt_secret, algorithms=[settings.jwt_algorithm])
    except jwt.InvalidTokenError as exc:
        raise _unauthorized("invalid auth token") from exc


def _context_from_claims(claims: dict[str, Any]) -> AuthContext:
    subject = claims.get("sub")
    roles = claims.get("roles", [])
    if not isinstance(subject, str) or not subject.strip():
        raise _unauthorized("token missing subject")
    if not isinstance(roles, list):
        raise _unauthorized("token roles must be a list")
    role_set = {str(role).strip() for role in roles if str(role).strip()}
    if not role_set:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="token has no roles")
    return AuthContext(user_id=subject.strip(), roles=role_set)


def get_auth_context(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
) -> AuthContext:
    settings = get_settings(request)
    if not settings.auth_enabled:
        # Local development acts as every role at once.
        return AuthContext(user_id="dev-local", roles=set(ALL_ROLES))
    if not credentials or credentials.scheme.lower() != "bearer":
        raise _unauthorized("missing bearer token")
    return _context_from_claims(_decode_claims(settings, credentials.credentials))


def get_optional_auth_context(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
) -> Optional[AuthContext]:
    """Public routes still attribute the caller when a token is sent."""
    settings = get_settings(request)
    if settings.auth_enabled and not credentials:
        return None
    return get_auth_context(request, credentials)


def require_roles(*required_roles: str) -> Callable[[AuthContext], AuthContext]:
    required = {role.strip() for role in required_roles if role.strip()}

    def dependency(context: AuthContext = Depends(get_auth_context)) -> AuthContext:
        if required and context.roles.isdisjoint(required):
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"insufficient role. required any of: {sorted(required)}",
            )
        return context

    return dependency


def ensure_self_or_staff(
    context: AuthContext,
    owner_id: Optional[str],
    *,
    staff_roles: frozenset[str] = STAFF_ROLES,
) -> None:
    """Candidates, caregivers and clients may only touch records they own."""
    if not context.roles.isdisjoint(staff_roles):
        return
    if owner_id and context.user_id == owner_id:
        return
    raise HTTPException(
        status_code=status.HTTP_403_FORBIDDEN,
        detail="not allowed to access another user's record",
    )
