import logging

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel, EmailStr

from hikeplanner.core.exceptions import AuthenticationError
from hikeplanner.core.security import create_access_token, get_current_user_id, get_token_payload
from hikeplanner.models.user import UserProfileCreate
from hikeplanner.repositories import Repositories
from hikeplanner.router.dependencies import dump, get_repositories

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["authentication"])


class LoginRequest(BaseModel):
    email: EmailStr


@router.post("/signup", status_code=status.HTTP_201_CREATED)
async def signup(payload: UserProfileCreate, repos: Repositories = Depends(get_repositories)):
    """
    Create a profile and return a token for it.
    """
    user = await repos.users.create_user(payload)
    token = create_access_token(user.id, user.email, user.display_name)
    logger.info(f"New user signed up: {user.id}")
    return {"user": dump(user), "token": token, "message": "User created successfully"}


@router.post("/login")
async def login(payload: LoginRequest, repos: Repositories = Depends(get_repositories)):
    """
    Mocked login: any active account is accepted by email alone.
    """
    user = await repos.users.find_by_email(payload.email)
    if user is None:
        raise AuthenticationError("Invalid email or password")
    token = create_access_token(user.id, user.email, user.display_name)
    return {"user": dump(user), "token": token, "message": "Login successful"}


@router.post("/logout")
async def logout(user_id: str = Depends(get_current_user_id)):
    # Tokens are stateless; the client drops it
    logger.info(f"User logged out: {user_id}")
    return {"message": "Logged out successfully"}


@router.post("/refresh")
async def refresh(token_payload: dict = Depends(get_token_payload)):
    token = create_access_token(
        token_payload["sub"], token_payload.get("email", ""), token_payload.get("name")
    )
    return {"token": token, "message": "Token refreshed successfully"}
