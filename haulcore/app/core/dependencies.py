"""
Authentication dependencies for FastAPI.

Resolves the bearer token into a ``DriverIdentity`` for the route.
"""

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials

from haulcore.app.core.identity import DriverIdentityResolver, JwtDriverIdentityResolver
from haulcore.app.domain.results import DriverIdentity

# HTTP Bearer security scheme
security = HTTPBearer()

_resolver: DriverIdentityResolver = JwtDriverIdentityResolver()


def get_identity_resolver() -> DriverIdentityResolver:
    return _resolver


async def get_current_identity(
    credentials: HTTPAuthorizationCredentials = Depends(security),
    resolver: DriverIdentityResolver = Depends(get_identity_resolver),
) -> DriverIdentity:
    """
    FastAPI dependency for caller identity.

    Raises:
        HTTPException: 401 if the token cannot be resolved
    """
    resolved = resolver.resolve(credentials.credentials)
    if not resolved.ok:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=resolved.error.message,
            headers={"WWW-Authenticate": "Bearer"},
        )
    return resolved.value
