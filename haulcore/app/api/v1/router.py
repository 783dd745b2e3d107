"""
API v1 Router.

Aggregates all v1 API endpoints.
"""

from fastapi import APIRouter
from haulcore.app.api.v1.endpoints import driver_loads, driver_trips, owner_dispatch

router = APIRouter()

# Driver app
router.include_router(driver_loads.router)
router.include_router(driver_trips.router)

# Owner dashboard
router.include_router(owner_dispatch.router)
