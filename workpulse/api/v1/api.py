"""
V1 API router aggregator — wires all endpoint modules together.
"""

from fastapi import APIRouter

from workpulse.api.v1.endpoints import attendance, health, notifications, realtime, tasks, users

api_router = APIRouter()

# Punch in/out, manual marks, reconciliation
api_router.include_router(attendance.router)

# Task lifecycle and review workflow
api_router.include_router(tasks.router)

# Inbox, broadcast, live socket
api_router.include_router(notifications.router)
api_router.include_router(realtime.router)

# Caller identity, health
api_router.include_router(users.router)
api_router.include_router(health.router)
