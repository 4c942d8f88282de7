from fastapi import APIRouter

from solo_leveling.api.routes import admin_logs, analytics, features, health, settings, uploads

api_router = APIRouter()

api_router.include_router(health.router, tags=["health"])
api_router.include_router(
    features.admin_router, prefix="/admin/settings/feature-flags", tags=["feature-flags"]
)
api_router.include_router(settings.router, prefix="/admin/settings", tags=["settings"])
api_router.include_router(admin_logs.router, prefix="/admin", tags=["admin"])
api_router.include_router(features.router, prefix="/features", tags=["feature-flags"])
api_router.include_router(analytics.router, prefix="/analytics", tags=["analytics"])
api_router.include_router(uploads.router, prefix="/upload", tags=["uploads"])
