"""Learner account API: subscription tier changes."""
from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from psychx.api.auth import UserOut, user_out
from psychx.core.auth import require_role
from psychx.core.logging import DOMAIN_ENTITLEMENT, get_domain_logger
from psychx.memory.database import get_db
from psychx.memory.records import UserStore
from psychx.models.entities import SubscriptionTier, User, UserRole

router = APIRouter(prefix="/users", tags=["users"])
logger = get_domain_logger(__name__, DOMAIN_ENTITLEMENT)


class TierUpdate(BaseModel):
    tier: SubscriptionTier


async def change_tier(db: AsyncSession, user: User, tier: SubscriptionTier, *, changed_by: str) -> User:
    previous = user.tier
    user = await UserStore(db).update(user, tier=tier.value)
    logger.info(
        "Tier changed | user_id=%s | from=%s | to=%s | by=%s", user.id, previous, user.tier, changed_by
    )
    return user


@router.put("/me/tier", response_model=UserOut)
async def update_my_tier(
    payload: TierUpdate,
    user: User = Depends(require_role(UserRole.USER)),
    db: AsyncSession = Depends(get_db),
):
    return user_out(await change_tier(db, user, payload.tier, changed_by=user.id))
