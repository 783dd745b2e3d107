"""
Role guards for driver and owner endpoints.
"""

from fastapi import Depends, HTTPException, status

from haulcore.app.core.dependencies import get_current_identity
from haulcore.app.domain.results import DriverIdentity


def require_owner(identity: DriverIdentity = Depends(get_current_identity)) -> DriverIdentity:
    """
    Dependency for owner-only endpoints (dispatch, cancellation, settlement).

    Usage:
        @router.post("/owner/trips")
        async def create_trip(owner: DriverIdentity = Depends(require_owner)):
            ...
    """
    if not identity.is_owner:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Owner access required"
        )
    return identity


def require_driver(identity: DriverIdentity = Depends(get_current_identity)) -> DriverIdentity:
    """Dependency for driver endpoints; the token must name a driver."""
    if identity.driver_id is None:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Driver access required"
        )
    return identity
