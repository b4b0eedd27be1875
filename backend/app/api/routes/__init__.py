from fastapi import APIRouter

from app.api.routes import exports, health, targets


api_router = APIRouter()
api_router.include_router(health.router)
api_router.include_router(targets.router)
api_router.include_router(exports.router)
