"""JWT token creation and decoding.

Token claims:
  - sub:          user ID (the acting identity)
  - permissions:  list of effective permission strings
  - type:         "access"
  - exp:          expiry timestamp

Tokens are issued by the surrounding identity service; create_access_token
exists for development tokens (see `python -m app.cli issue-token`) and tests.
"""

from datetime import datetime, timedelta, timezone

from jose import JWTError, jwt

from app.config import settings

ALGORITHM = settings.jwt_algorithm


def create_access_token(
    user_id: str,
    permissions: list[str],
    expires_delta: timedelta | None = None,
) -> str:
    expire = datetime.now(timezone.utc) + (
        expires_delta or timedelta(minutes=settings.access_token_expire_minutes)
    )
    payload = {
        "sub": user_id,
        "permissions": permissions,
        "type": "access",
        "exp": expire,
    }
    return jwt.encode(payload, settings.secret_key, algorithm=ALGORITHM)


def decode_token(token: str) -> dict:
    """Decode and validate a JWT. Returns empty dict on failure."""
    try:
        return jwt.decode(token, settings.secret_key, algorithms=[ALGORITHM])
    except JWTError:
        return {}
