from datetime import datetime
from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, or_
from pydantic import BaseModel, ConfigDict, EmailStr, Field
from typing import Optional
from ..core.auth import get_password_hash
from ..core.config import settings
from ..core.database import get_db
from ..core.exceptions import ConflictError, ForbiddenError, NotFoundError, ServerError
from ..core.permissions import Permission, Role, require_permission
from ..models.user import User
import logging

logger = logging.getLogger(__name__)
router = APIRouter()


class UserCreate(BaseModel):
    id: str = Field(min_length=1)
    name: str = Field(min_length=1)
    email: EmailStr
    password: str = Field(min_length=1)
    role: Role = Role.USER


class UserUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1)
    email: Optional[EmailStr] = None
    password: Optional[str] = Field(default=None, min_length=1)
    role: Optional[Role] = None
    is_active: Optional[bool] = None


class UserResponse(BaseModel):
    id: str
    name: str
    email: str
    role: str
    is_active: bool
    created_at: Optional[datetime]
    updated_at: Optional[datetime]

    model_config = ConfigDict(from_attributes=True)


async def get_user_or_404(db: AsyncSession, user_id: str) -> User:
    user = await db.get(User, user_id)
    if not user:
        raise NotFoundError("User", user_id)
    return user


async def ensure_email_available(db: AsyncSession, email: str, exclude_id: Optional[str] = None):
    stmt = select(User.id).filter(User.email == email)
    if exclude_id is not None:
        stmt = stmt.filter(User.id != exclude_id)
    if (await db.execute(stmt)).first():
        raise ConflictError("Email already registered")


def is_protected(user_id: str) -> bool:
    return user_id == settings.admin_user_id


@router.get("")
async def list_users(
        role: Optional[Role] = Query(default=None),
        active: Optional[bool] = Query(default=None),
        search: Optional[str] = Query(default=None),
        db: AsyncSession = Depends(get_db),
        current_user: dict = Depends(require_permission(Permission.USERS_READ))
):
    try:
        stmt = select(User)
        if role is not None:
            stmt = stmt.filter(User.role == role.value)
        if active is not None:
            stmt = stmt.filter(User.is_active == active)
        if search:
            like = f"%{search}%"
            stmt = stmt.filter(or_(User.name.ilike(like), User.email.ilike(like), User.id.ilike(like)))
        result = await db.execute(stmt.order_by(User.id))
        users = [UserResponse.model_validate(u) for u in result.scalars().all()]
        return {"success": True, "count": len(users), "data": users}
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error getting users: {e}")
        raise ServerError("Error retrieving users", e)


@router.get("/{user_id}")
async def get_user(user_id: str, db: AsyncSession = Depends(get_db),
                   current_user: dict = Depends(require_permission(Permission.USERS_READ))):
    user = await get_user_or_404(db, user_id)
    return {"success": True, "data": UserResponse.model_validate(user)}


@router.post("", status_code=201)
async def create_user(user: UserCreate, db: AsyncSession = Depends(get_db),
                      current_user: dict = Depends(require_permission(Permission.USERS_WRITE))):
    try:
        if await db.get(User, user.id):
            raise ConflictError("User id already exists")

        email = user.email.lower()
        await ensure_email_available(db, email)

        db_user = User(
            id=user.id,
            name=user.name,
            email=email,
            hashed_password=get_password_hash(user.password),
            role=user.role.value,
            is_active=True
        )
        db.add(db_user)
        await db.commit()
        await db.refresh(db_user)
        logger.info(f"User created: {db_user.id} ({db_user.role})")
        return {
            "success": True,
            "message": "User created successfully",
            "data": UserResponse.model_validate(db_user)
        }
    except HTTPException:
        await db.rollback()
        raise
    except Exception as e:
        logger.error(f"Error creating user: {e}")
        await db.rollback()
        raise ServerError("Error creating user", e)


@router.put("/{user_id}")
async def update_user(user_id: str, user: UserUpdate, db: AsyncSession = Depends(get_db),
                      current_user: dict = Depends(require_permission(Permission.USERS_WRITE))):
    try:
        db_user = await get_user_or_404(db, user_id)
        changes = {k: v for k, v in user.model_dump(exclude_unset=True).items() if v is not None}

        if is_protected(user_id) and (changes.get("is_active") is False or changes.get("role", Role.ADMIN) != Role.ADMIN):
            raise ForbiddenError("The main administrator account cannot be deactivated or demoted")

        if "email" in changes:
            changes["email"] = changes["email"].lower()
            if changes["email"] != db_user.email:
                await ensure_email_available(db, changes["email"], exclude_id=user_id)

        if "password" in changes:
            db_user.hashed_password = get_password_hash(changes.pop("password"))

        for field, value in changes.items():
            if isinstance(value, Role):
                value = value.value
            setattr(db_user, field, value)

        await db.commit()
        await db.refresh(db_user)
        logger.info(f"User updated: {user_id}")
        return {
            "success": True,
            "message": "User updated successfully",
            "data": UserResponse.model_validate(db_user)
        }
    except HTTPException:
        await db.rollback()
        raise
    except Exception as e:
        logger.error(f"Error updating user: {e}")
        await db.rollback()
        raise ServerError("Error updating user", e)


@router.delete("/{user_id}")
async def deactivate_user(user_id: str, db: AsyncSession = Depends(get_db),
                          current_user: dict = Depends(require_permission(Permission.USERS_WRITE))):
    try:
        if is_protected(user_id):
            logger.warning(f"Refused to deactivate protected account '{user_id}'")
            raise ForbiddenError("The main administrator account cannot be deactivated")

        db_user = await get_user_or_404(db, user_id)
        db_user.is_active = False
        await db.commit()
        await db.refresh(db_user)
        logger.info(f"User deactivated: {user_id}")
        return {
            "success": True,
            "message": "User deactivated successfully",
            "data": UserResponse.model_validate(db_user)
        }
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error deactivating user: {e}")
        await db.rollback()
        raise ServerError("Error deactivating user", e)
