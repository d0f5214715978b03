from fastapi import APIRouter
from cibot.api.endpoints import (
    builds_router,
    health_router,
    merge_check_router,
    webhooks_router,
)

router = APIRouter(prefix="/api/v1")

router.include_router(health_router, prefix="/health", tags=["health"])
router.include_router(webhooks_router, prefix="/stash", tags=["stash"])
router.include_router(builds_router, prefix="/builds", tags=["builds"])
router.include_router(merge_check_router, prefix="/pull-requests", tags=["pull-requests"])
