"""Bearer token verification for tokens issued by the main timetable API."""

from __future__ import annotations

from typing import Annotated, Any

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt

from timetable_notify.config import get_settings

ALGORITHM = "HS256"

security_scheme = HTTPBearer(auto_error=False)


def decode_access_token(token: str, secret: str) -> dict[str, Any] | None:
  """Decode an HS256 token, returning None when the signature or expiry is invalid."""
  try:
    return jwt.decode(token, secret, algorithms=[ALGORITHM])
  except JWTError:
    return None


async def get_current_user_id(token: Annotated[HTTPAuthorizationCredentials | None, Depends(security_scheme)]) -> int:
  """Resolve the authenticated user id from the `id` claim of the bearer token."""
  if token is None:
    raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized: No token provided", headers={"WWW-Authenticate": "Bearer"})

  secret = get_settings().jwt_secret
  if not secret:
    raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Authentication is not configured")

  # Rejected tokens are 403 rather than 401, matching the main API's middleware.
  claims = decode_access_token(token.credentials, secret)
  if claims is None:
    raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Forbidden: Invalid token")

  user_id = claims.get("id")
  if isinstance(user_id, bool) or not isinstance(user_id, int | str) or not str(user_id).isdigit():
    raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Forbidden: Invalid token claims")

  return int(user_id)
