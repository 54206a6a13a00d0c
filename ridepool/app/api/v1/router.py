"""
API v1 Router.

Aggregates all v1 API endpoints.
"""

from fastapi import APIRouter
from ridepool.app.api.v1.endpoints import (
    auth, events, offers, ride_requests, join_requests, me
)

router = APIRouter()

# Identity
router.include_router(auth.router)

# Event registry
router.include_router(events.router)

# Listings
router.include_router(offers.router)
router.include_router(ride_requests.router)
router.include_router(offers.listings_router)

# Matching
router.include_router(join_requests.router)

# My rides
router.include_router(me.router)
