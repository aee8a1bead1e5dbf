from fastapi import APIRouter

from psychx.core.settings import settings

router = APIRouter(tags=["health"])


@router.get("/health")
async def health():
    return {
        "status": "ok",
        "service": "psychx-api",
        "env": settings.app_env,
        "llm_provider": settings.llm_provider,
        "booking_selection_policy": settings.booking_selection_policy,
    }
