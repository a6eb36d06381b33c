"""
MatriMatch — Main API Router

Aggregates all sub-routers under a single prefix so that ``matrimatch.main``
can mount the entire API surface with one ``include_router`` call.
"""

from fastapi import APIRouter

from matrimatch.api import matching, notifications

router = APIRouter()

router.include_router(matching.router, prefix="/matches", tags=["Matching"])
router.include_router(notifications.router, prefix="/notifications", tags=["Notifications"])
