"""FastAPI dependencies for the acting identity and permission checks.

Dependencies:
  get_current_identity    → decode the bearer JWT into an ActingIdentity
  require_permission(...) → restrict to identities holding granular permissions
"""

from dataclasses import dataclass

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from app.auth.jwt import decode_token
from app.auth.permissions import has_permission

# Tokens are minted outside this service (see `python -m app.cli issue-token`)
bearer_scheme = HTTPBearer(auto_error=False)


@dataclass(frozen=True)
class ActingIdentity:
    """Pre-resolved caller: who is acting and what they may do."""
    user_id: str
    permissions: frozenset[str]

    def can(self, permission: str) -> bool:
        return has_permission(self.permissions, permission)


# ── Core identity dependency ────────────────────────────────

async def get_current_identity(
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
) -> ActingIdentity:
    """Decode the JWT and return the acting identity from its claims."""
    if credentials is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )
    payload = decode_token(credentials.credentials)
    user_id: str | None = payload.get("sub")
    if not user_id or payload.get("type") != "access":
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired token",
            headers={"WWW-Authenticate": "Bearer"},
        )

    return ActingIdentity(
        user_id=user_id,
        permissions=frozenset(payload.get("permissions", [])),
    )


# ── Permission-based access control ─────────────────────────

def require_permission(*perms: str):
    """Dependency factory: restrict to identities that hold ALL listed permissions.

    Usage:
        @router.post("/{model_id}/objects/batch-update")
        async def batch_update(
            identity: ActingIdentity = Depends(require_permission("objects.write")),
        ):
            ...
    """
    async def _check(
        identity: ActingIdentity = Depends(get_current_identity),
    ) -> ActingIdentity:
        missing = [p for p in perms if not identity.can(p)]
        if missing:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Missing permissions: {', '.join(missing)}",
            )
        return identity

    return _check
