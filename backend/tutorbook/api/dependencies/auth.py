# backend/tutorbook/api/dependencies/auth.py
"""
Authentication dependencies.

Routes that act on behalf of a customer depend on ``get_current_principal``,
which requires a valid bearer token from the identity provider.
"""

from functools import lru_cache
import logging
from typing import Optional

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from ...auth import IdentityProvider
from ...core.exceptions import UnauthorizedException
from ...principal import UserPrincipal

logger = logging.getLogger(__name__)

bearer_scheme = HTTPBearer(auto_error=False)


@lru_cache(maxsize=1)
def get_identity_provider() -> IdentityProvider:
    return IdentityProvider()


def get_current_principal(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    identity: IdentityProvider = Depends(get_identity_provider),
) -> UserPrincipal:
    """Resolve the bearer token into the calling user, or answer 401."""
    if credentials is None or credentials.scheme.lower() != "bearer":
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )
    try:
        return identity.principal_from_token(credentials.credentials)
    except UnauthorizedException as exc:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=exc.message,
            headers={"WWW-Authenticate": "Bearer"},
        ) from exc
