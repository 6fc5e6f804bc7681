"""Authentication Routes

Endpoints:
- POST /api/auth/signup - Register new user
- POST /api/auth/login - User login
- GET /api/auth/me - Get current user
"""
from fastapi import APIRouter, HTTPException, Depends, status
import logging

from models import CredentialsRequest, AuthResponse, UserPublic, User
from middleware import get_current_user, get_user_service
from services.user_service import UserService, EmailAlreadyExistsError, InvalidCredentialsError

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/auth", tags=["auth"])


def _require_credentials(data: CredentialsRequest):
    if not data.email or not data.email.strip() or not data.password:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Email and password are required"
        )


@router.post("/signup", response_model=AuthResponse, status_code=status.HTTP_201_CREATED)
async def signup(data: CredentialsRequest, users: UserService = Depends(get_user_service)):
    """Register a new user on the free plan and return a session token."""
    _require_credentials(data)
    try:
        user, token = await users.signup(data.email, data.password)
    except EmailAlreadyExistsError as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))
    except Exception as e:
        logger.error(f"Signup failed: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Server error")

    return AuthResponse(token=token, user=UserPublic.from_user(user))


@router.post("/login", response_model=AuthResponse)
async def login(data: CredentialsRequest, users: UserService = Depends(get_user_service)):
    _require_credentials(data)
    try:
        user, token = await users.login(data.email, data.password)
    except InvalidCredentialsError as e:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=str(e))
    except Exception as e:
        logger.error(f"Login failed: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Server error")

    return AuthResponse(token=token, user=UserPublic.from_user(user))


@router.get("/me", response_model=UserPublic)
async def get_me(user: User = Depends(get_current_user)):
    """Get current user info."""
    return UserPublic.from_user(user)
