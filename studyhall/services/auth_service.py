"""
Authentication service: registration, login and privileged accounts.
Sign up may carry a referral code, recorded as a pending referral.
"""

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from fastapi import HTTPException, status

from studyhall.core.logging import get_logger
from studyhall.core.security import create_access_token, hash_password, verify_password
from studyhall.models.user import User, dashboard_path
from studyhall.schemas.user import PrivilegedUserCreate, UserCreate, UserLogin
from studyhall.services import referral_service

logger = get_logger(__name__)


async def _ensure_email_free(db: AsyncSession, email: str) -> None:
    result = await db.execute(select(User).where(User.email == email))
    if result.scalar_one_or_none():
        logger.warning("registration_failed", reason="email_exists", email=email)
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Email already registered",
        )


async def _create_user(db: AsyncSession, data, role: str) -> User:
    email = data.email.lower()
    await _ensure_email_free(db, email)
    user = User(
        email=email,
        full_name=data.full_name,
        phone=data.phone,
        hashed_password=hash_password(data.password),
        role=role,
        is_active=True,
    )
    db.add(user)
    await db.flush()
    return user


async def register_user(db: AsyncSession, user_data: UserCreate) -> User:
    """Self-service sign up for students, merchants and institutions."""
    user = await _create_user(db, user_data, user_data.role)
    logger.info("user_registered", user_id=user.id, role=user.role)
    if user_data.referral_code:
        await referral_service.apply_code(db, user, user_data.referral_code)
    return user


async def create_privileged_user(
    db: AsyncSession, creator: User, user_data: PrivilegedUserCreate
) -> User:
    user = await _create_user(db, user_data, user_data.role.value)
    logger.info(
        "privileged_user_created",
        user_id=user.id,
        role=user.role,
        created_by=creator.id,
    )
    return user


async def authenticate_user(db: AsyncSession, login_data: UserLogin) -> tuple[str, User]:
    """
    Authenticate user and return a JWT access token with the user.
    Raises 401 if credentials are invalid.
    """
    result = await db.execute(select(User).where(User.email == login_data.email.lower()))
    user = result.scalar_one_or_none()

    if not user or not verify_password(login_data.password, user.hashed_password):
        logger.warning("login_failed", email=login_data.email)
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid email or password",
            headers={"WWW-Authenticate": "Bearer"},
        )

    if not user.is_active:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Account is deactivated",
        )

    token = create_access_token(data={"sub": str(user.id), "role": user.role})
    logger.info("user_logged_in", user_id=user.id, role=user.role)
    return token, user


def profile(user: User) -> dict:
    return {
        "id": user.id,
        "email": user.email,
        "full_name": user.full_name,
        "phone": user.phone,
        "role": user.role,
        "is_active": user.is_active,
        "created_at": user.created_at,
        "dashboard_path": dashboard_path(user.role),
    }
