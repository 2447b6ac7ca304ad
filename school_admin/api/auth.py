from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession
from pydantic import BaseModel, Field
from ..core.database import get_db
from ..core.auth import (
    create_access_token,
    decode_access_token,
    get_current_user,
    refresh_access_token,
    verify_password,
)
from ..core.exceptions import AuthError, NotFoundError, ServerError
from ..models.user import User
import logging

logger = logging.getLogger(__name__)
router = APIRouter()


class LoginRequest(BaseModel):
    id: str = Field(min_length=1)
    password: str = Field(min_length=1)


class TokenRequest(BaseModel):
    token: str = Field(min_length=1)


@router.post("/login")
async def login(request: LoginRequest, db: AsyncSession = Depends(get_db)):
    """
    Authenticate a user by id and password and return an access token
    """
    try:
        logger.info(f"Login attempt for user: {request.id}")

        user = await db.get(User, request.id)
        if not user or not user.is_active or not verify_password(request.password, user.hashed_password):
            logger.warning(f"Failed login attempt for user: {request.id}")
            raise AuthError("Invalid credentials")

        token = create_access_token(user.id, user.role, user.name)
        logger.info(f"Login successful: {user.id}")
        return {
            "success": True,
            "message": "Login successful",
            "data": {
                "token": token,
                "token_type": "bearer",
                "user": {
                    "id": user.id,
                    "name": user.name,
                    "email": user.email,
                    "role": user.role
                }
            }
        }

    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Login error for {request.id}: {e}")
        raise ServerError("Authentication failed", e)


@router.post("/verify")
async def verify(request: TokenRequest):
    """
    Check whether a token is valid and return its claims
    """
    claims = decode_access_token(request.token)
    return {"success": True, "data": {"valid": True, "claims": claims}}


@router.post("/refresh")
async def refresh(request: TokenRequest):
    """
    Issue a fresh token from a validly signed one, even if it has expired
    """
    token = refresh_access_token(request.token)
    return {"success": True, "message": "Token refreshed", "data": {"token": token}}


@router.get("/me")
async def get_me(current_user: dict = Depends(get_current_user), db: AsyncSession = Depends(get_db)):
    """
    Get current user information
    """
    user = await db.get(User, current_user["user_id"])
    if not user:
        raise NotFoundError("User", current_user["user_id"])

    return {
        "success": True,
        "data": {
            "id": user.id,
            "name": user.name,
            "email": user.email,
            "role": user.role,
            "is_active": user.is_active
        }
    }
