from fastapi import APIRouter

from paygsite.interfaces.api.admin_jobs import router as admin_jobs_router
from paygsite.interfaces.api.health import router as health_router

api_router = APIRouter()
api_router.include_router(health_router, tags=["health"])
api_router.include_router(admin_jobs_router)
