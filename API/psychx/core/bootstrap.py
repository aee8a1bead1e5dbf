import logging
from datetime import datetime, timedelta, timezone

from sqlalchemy.ext.asyncio import AsyncSession

from psychx.core.password import hash_password
from psychx.core.settings import settings
from psychx.memory.records import AvailabilityStore, UserStore
from psychx.models.base import Base
from psychx.models.entities import SubscriptionTier, UserRole

logger = logging.getLogger(__name__)


SEED_USERS = [
    ("u1", "Rahul", "Sharma", "rahul@example.com", "student123", UserRole.USER, SubscriptionTier.STANDARD, "12th"),
    ("u2", "Priya", "Singh", "priya@example.com", "student123", UserRole.USER, SubscriptionTier.FREE, "10th"),
    ("a1", "System", "Admin", "admin@psychx.com", "admin123", UserRole.ADMIN, None, ""),
    ("c1", "Dr. Amit", "Patel", "consultant@psychx.com", "consultant123", UserRole.CONSULTANT, None, ""),
    ("c2", "Sarah", "Khan", "sarah@expert.com", "consultant123", UserRole.CONSULTANT, None, ""),
]

SEED_AVAILABILITY = [
    ("c1", ["Monday", "Wednesday", "Friday"], "09:00", "17:00"),
    ("c2", ["Tuesday", "Thursday", "Saturday"], "10:00", "18:00"),
]


async def seed_demo_data(session: AsyncSession) -> int:
    users = UserStore(session)
    availability = AvailabilityStore(session)
    # Fixed, strictly increasing creation times keep consultant iteration order stable.
    base_time = datetime(2024, 1, 1, tzinfo=timezone.utc)
    created = 0
    for offset, (user_id, first, last, email, password, role, tier, current_class) in enumerate(SEED_USERS):
        if await users.get_by_email(email) is not None:
            continue
        await users.create(
            id=user_id,
            first_name=first,
            last_name=last,
            email=email,
            password_hash=hash_password(password),
            role=role.value,
            tier=tier.value if tier else None,
            current_class=current_class,
            created_at=base_time + timedelta(seconds=offset),
        )
        created += 1
    for consultant_id, days, start_time, end_time in SEED_AVAILABILITY:
        if await users.get_by_id(consultant_id) is None:
            continue
        if await availability.get_by_consultant_id(consultant_id) is None:
            await availability.upsert(consultant_id, days=days, start_time=start_time, end_time=end_time)
    return created


async def initialize_database(session: AsyncSession, engine) -> None:
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    if settings.seed_demo_data:
        created = await seed_demo_data(session)
        if created:
            logger.info("Seeded %s demo accounts", created)
