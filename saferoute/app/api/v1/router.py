"""
API v1 Router.

Aggregates all v1 API endpoints.
"""

from fastapi import APIRouter
from saferoute.app.api.v1.endpoints import (
    trips, location, tracking, alerts,
    routes, summaries, ops, realtime
)

router = APIRouter()

# Trip lifecycle
router.include_router(trips.router)

# Location ingestion and history
router.include_router(location.router)

# Tracking session control
router.include_router(tracking.router)

# Alerts
router.include_router(alerts.router)

# Saved routes
router.include_router(routes.router)

# Daily summaries
router.include_router(summaries.router)

# Ops endpoints
router.include_router(ops.router)

# Circle rooms (WebSocket)
router.include_router(realtime.router)
