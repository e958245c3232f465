from fastapi import APIRouter

from jobdedup.api.routes import admin, dedup, health

api_router = APIRouter()
api_router.include_router(health.router, tags=["health"])
api_router.include_router(dedup.router, prefix="/dedup", tags=["dedup"])
api_router.include_router(admin.router, prefix="/admin", tags=["admin"])
