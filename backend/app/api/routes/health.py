from fastapi import APIRouter

from app.services.field_registry import default_registry


router = APIRouter(tags=["health"])


@router.get("/health")
def health() -> dict:
    return {"ok": True, "fields": len(default_registry())}
