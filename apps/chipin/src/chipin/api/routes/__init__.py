"""API v1 router registration."""

from fastapi import APIRouter

from chipin.api.routes import chips, jobs, organizers, pools, webhooks

v1_router = APIRouter(prefix="/v1")
v1_router.include_router(chips.router)
v1_router.include_router(pools.router)
v1_router.include_router(organizers.router)
v1_router.include_router(jobs.router)
v1_router.include_router(webhooks.router)
