"""
Authentication endpoints: register, login, profile and staff accounts.
"""

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from studyhall.core.security import get_current_user, require_roles
from studyhall.db.session import get_db
from studyhall.models.user import ADMIN_ROLES, User, dashboard_path
from studyhall.schemas.user import (
    MeResponse,
    PrivilegedUserCreate,
    Token,
    UserCreate,
    UserLogin,
    UserResponse,
)
from studyhall.services.auth_service import (
    authenticate_user,
    create_privileged_user,
    profile,
    register_user,
)

router = APIRouter(prefix="/auth", tags=["Authentication"])


@router.post("/register", response_model=UserResponse, status_code=status.HTTP_201_CREATED)
async def register(user_data: UserCreate, db: AsyncSession = Depends(get_db)):
    """Register a student, merchant or institution account."""
    return await register_user(db, user_data)


@router.post("/login", response_model=Token)
async def login(login_data: UserLogin, db: AsyncSession = Depends(get_db)):
    """Authenticate and receive a JWT access token."""
    token, user = await authenticate_user(db, login_data)
    return Token(access_token=token, role=user.role, dashboard_path=dashboard_path(user.role))


@router.get("/me", response_model=MeResponse)
async def me(user: User = Depends(get_current_user)):
    return profile(user)


@router.post("/users", response_model=UserResponse, status_code=status.HTTP_201_CREATED)
async def create_user(
    user_data: PrivilegedUserCreate,
    admin: User = Depends(require_roles(*ADMIN_ROLES)),
    db: AsyncSession = Depends(get_db),
):
    """Create an account with any role. Admins only."""
    return await create_privileged_user(db, admin, user_data)
