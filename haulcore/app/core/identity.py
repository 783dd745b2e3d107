"""
Driver identity resolution.

Every mutation runs with an explicit ``DriverIdentity`` resolved once per
request from the caller's token.
"""

from typing import Protocol

from haulcore.app.core.exceptions import IdentityError
from haulcore.app.core.jwt import decode_access_token
from haulcore.app.domain.results import ActionResult, DriverIdentity

ROLES = frozenset({"DRIVER", "OWNER"})


class DriverIdentityResolver(Protocol):
    def resolve(self, token: str) -> ActionResult[DriverIdentity]:
        ...


class JwtDriverIdentityResolver:
    """Reads ``driver_id``, ``company_id`` and ``role`` claims from an HS256 token."""

    def resolve(self, token: str) -> ActionResult[DriverIdentity]:
        payload = decode_access_token(token)
        if payload is None:
            return ActionResult.failure(IdentityError("Could not validate credentials"))

        company_id = payload.get("company_id")
        if not isinstance(company_id, int):
            return ActionResult.failure(IdentityError("Token carries no company"))

        role = payload.get("role", "DRIVER")
        if role not in ROLES:
            return ActionResult.failure(IdentityError("Invalid role in token"))

        driver_id = payload.get("driver_id")
        if role == "DRIVER" and not isinstance(driver_id, int):
            return ActionResult.failure(IdentityError("Token carries no driver"))

        return ActionResult.success(DriverIdentity(company_id=company_id, driver_id=driver_id, role=role))
