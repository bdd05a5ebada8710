# backend/tutorbook/auth.py
"""
Identity provider adapter.

Tutorbook never manages credentials. Callers present a bearer JWT issued by
the external identity provider; this module verifies it with PyJWT and turns
its claims into a UserPrincipal.
"""

from datetime import datetime, timedelta, timezone
import logging
from typing import Any, Dict, Optional, cast

import jwt
from jwt import PyJWTError

from .core.config import Settings, settings as default_settings
from .core.exceptions import UnauthorizedException
from .principal import UserPrincipal

logger = logging.getLogger(__name__)


def _secret_value(secret_obj: Any) -> str:
    getter = getattr(secret_obj, "get_secret_value", None)
    if callable(getter):
        return cast(str, getter())
    return cast(str, secret_obj)


class IdentityProvider:
    """Verifies bearer tokens against the configured signing key and claims."""

    def __init__(self, config: Optional[Settings] = None):
        self.settings = config or default_settings

    def decode_token(self, token: str) -> Dict[str, Any]:
        """Decode and verify a JWT, enforcing audience/issuer when configured."""
        options: Dict[str, Any] = {"require": ["sub", "exp"]}
        if not self.settings.identity_jwt_audience:
            options["verify_aud"] = False
        payload_raw = jwt.decode(
            token,
            _secret_value(self.settings.identity_jwt_secret),
            algorithms=[self.settings.identity_jwt_algorithm],
            audience=self.settings.identity_jwt_audience,
            issuer=self.settings.identity_jwt_issuer,
            options=options,
        )
        return cast(Dict[str, Any], payload_raw)

    def principal_from_token(self, token: str) -> UserPrincipal:
        """
        Resolve a bearer token to a principal.

        Raises:
            UnauthorizedException: Token invalid, expired, or missing claims
        """
        try:
            claims = self.decode_token(token)
        except PyJWTError as exc:
            logger.info("Rejected bearer token: %s", exc)
            raise UnauthorizedException(
                "Could not validate credentials", code="INVALID_TOKEN"
            ) from exc

        user_id = claims.get("sub")
        email = claims.get("email")
        if not user_id or not email:
            raise UnauthorizedException(
                "Token is missing the subject or email claim", code="INVALID_TOKEN"
            )
        return UserPrincipal(user_id=str(user_id), email=str(email))

    def create_access_token(
        self, user_id: str, email: str, expires_delta: Optional[timedelta] = None
    ) -> str:
        """
        Issue a token the way the identity provider would.

        Used by local tooling and tests; production tokens come from the
        external provider.
        """
        expire = datetime.now(timezone.utc) + (expires_delta or timedelta(minutes=30))
        claims: Dict[str, Any] = {"sub": user_id, "email": email, "exp": expire}
        if self.settings.identity_jwt_audience:
            claims["aud"] = self.settings.identity_jwt_audience
        if self.settings.identity_jwt_issuer:
            claims["iss"] = self.settings.identity_jwt_issuer
        return jwt.encode(
            claims,
            _secret_value(self.settings.identity_jwt_secret),
            algorithm=self.settings.identity_jwt_algorithm,
        )
