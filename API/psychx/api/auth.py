"""Auth API: learner signup and email/password login for every role."""
from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from psychx.core.auth import get_current_user
from psychx.core.errors import EmailTakenError, NotAuthenticatedError
from psychx.core.jwt_auth import create_token
from psychx.core.logging import DOMAIN_AUTH, get_domain_logger
from psychx.core.password import hash_password, verify_password
from psychx.memory.database import get_db
from psychx.memory.records import UserStore
from psychx.models.entities import SubscriptionTier, User, UserRole

router = APIRouter(prefix="/auth", tags=["auth"])
logger = get_domain_logger(__name__, DOMAIN_AUTH)


class LoginRequest(BaseModel):
    email: str = Field(min_length=3, max_length=255)
    password: str = Field(min_length=1, max_length=128)


class SignupRequest(BaseModel):
    first_name: str = Field(min_length=1, max_length=128)
    last_name: str = Field(default="", max_length=128)
    email: str = Field(min_length=3, max_length=255)
    password: str = Field(min_length=6, max_length=128)
    current_class: str = Field(default="10th", max_length=32)


class UserOut(BaseModel):
    id: str
    first_name: str
    last_name: str
    email: str
    role: str
    tier: str | None = None
    current_class: str = ""


class AuthResponse(BaseModel):
    token: str
    user: UserOut


def user_out(user: User) -> UserOut:
    return UserOut(
        id=user.id,
        first_name=user.first_name,
        last_name=user.last_name,
        email=user.email,
        role=user.role,
        tier=user.tier,
        current_class=user.current_class,
    )


@router.post("/login", response_model=AuthResponse)
async def login(payload: LoginRequest, db: AsyncSession = Depends(get_db)):
    user = await UserStore(db).get_by_email(payload.email)
    if not user or not verify_password(payload.password, user.password_hash):
        logger.info("Failed login attempt")
        raise NotAuthenticatedError("Invalid email or password.")
    return AuthResponse(token=create_token(user.id, user.email, user.role), user=user_out(user))


@router.get("/me", response_model=UserOut)
async def me(user: User = Depends(get_current_user)):
    return user_out(user)


@router.post("/signup", response_model=AuthResponse, status_code=201)
async def signup(payload: SignupRequest, db: AsyncSession = Depends(get_db)):
    users = UserStore(db)
    if await users.get_by_email(payload.email) is not None:
        raise EmailTakenError("User with this email already exists.")
    # Self-service accounts are always FREE learners; staff accounts are provisioned separately.
    user = await users.create(
        first_name=payload.first_name.strip(),
        last_name=payload.last_name.strip(),
        email=payload.email.strip().lower(),
        password_hash=hash_password(payload.password),
        role=UserRole.USER.value,
        tier=SubscriptionTier.FREE.value,
        current_class=payload.current_class.strip(),
    )
    logger.info("Learner signed up | user_id=%s", user.id)
    return AuthResponse(token=create_token(user.id, user.email, user.role), user=user_out(user))
