"""
Authentication routes for registration, login, profile and token refresh.
"""
from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session
from app.db.session import get_db
from app.schemas.user import UserCreate, UserLogin, UserResponse, UserUpdate, PasswordChange
from app.models.user import User
from app.core.security import create_access_token
from app.core.rate_limit import auth_limiter
from app.core.utils import format_response
from app.api.dependencies import get_current_user
from app.services import user_service

router = APIRouter(prefix="/auth", tags=["auth"])


def _session_payload(user: User) -> dict:
    return {
        "user": UserResponse.model_validate(user),
        "token": create_access_token(user.id)
    }


@router.post("/register", status_code=status.HTTP_201_CREATED, dependencies=[Depends(auth_limiter)])
async def register(user_data: UserCreate, db: Session = Depends(get_db)):
    """Register a new user and sign them in."""
    user = user_service.register_user(db, user_data)
    return format_response(_session_payload(user), "User registered successfully")


@router.post("/login", dependencies=[Depends(auth_limiter)])
async def login(credentials: UserLogin, db: Session = Depends(get_db)):
    """Login and get JWT token."""
    user = user_service.authenticate(db, credentials.email, credentials.password)
    if not user:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid email or password"
        )
    return format_response(_session_payload(user), "Login successful")


@router.get("/me")
async def get_me(current_user: User = Depends(get_current_user)):
    return format_response({"user": UserResponse.model_validate(current_user)})


@router.put("/profile")
async def update_profile(
    profile: UserUpdate,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Update name and/or email. Role is not editable here."""
    user = user_service.update_profile(db, current_user, profile)
    return format_response({"user": UserResponse.model_validate(user)}, "Profile updated successfully")


@router.put("/password")
async def change_password(
    passwords: PasswordChange,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    user_service.change_password(db, current_user, passwords.current_password, passwords.new_password)
    return format_response(message="Password changed successfully")


@router.post("/refresh", dependencies=[Depends(auth_limiter)])
async def refresh_token(current_user: User = Depends(get_current_user)):
    """Issue a fresh token for a still-valid one."""
    return format_response({"token": create_access_token(current_user.id)}, "Token refreshed successfully")


@router.post("/logout")
async def logout(current_user: User = Depends(get_current_user)):
    """Tokens are stateless; the client discards its copy."""
    return format_response(message="Logged out successfully")
