from fastapi import APIRouter

from .health import router as health_router
from .bugs import router as bugs_router
from .refresh import router as refresh_router

api_router = APIRouter()
api_router.include_router(health_router)
api_router.include_router(bugs_router)
api_router.include_router(refresh_router)
