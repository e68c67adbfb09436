"""Master API router mounted at /api/v1."""

from fastapi import APIRouter

from leadbroker.api.routes import access, admin, commissions, disputes, health, jobs, providers

api_router = APIRouter(prefix="/api/v1")
api_router.include_router(health.router, tags=["Health"])
api_router.include_router(providers.router)
api_router.include_router(jobs.router)
api_router.include_router(access.router)
api_router.include_router(disputes.router)
api_router.include_router(commissions.router)
api_router.include_router(admin.router)
