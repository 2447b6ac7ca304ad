from datetime import datetime
from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, or_
from pydantic import BaseModel, ConfigDict, Field
from typing import Optional
from ..core.database import get_db
from ..core.exceptions import ConflictError, NotFoundError, ServerError, ValidationError
from ..core.permissions import Permission, require_permission
from ..models.group import Group, GroupStatus
from ..utils.calculations import group_availability
import logging

logger = logging.getLogger(__name__)
router = APIRouter()


class GroupCreate(BaseModel):
    code: str = Field(min_length=1)
    name: str = Field(min_length=1)
    term: str = ""
    instructor: str = ""
    description: str = ""
    capacity: int = Field(default=30, gt=0)
    status: GroupStatus = GroupStatus.OPEN


class GroupUpdate(BaseModel):
    code: Optional[str] = Field(default=None, min_length=1)
    name: Optional[str] = Field(default=None, min_length=1)
    term: Optional[str] = None
    instructor: Optional[str] = None
    description: Optional[str] = None
    capacity: Optional[int] = Field(default=None, gt=0)
    status: Optional[GroupStatus] = None
    is_active: Optional[bool] = None


class GroupResponse(BaseModel):
    id: int
    code: str
    name: str
    term: Optional[str]
    instructor: Optional[str]
    description: Optional[str]
    capacity: int
    enrolled_count: int
    status: str
    is_active: bool
    created_at: Optional[datetime]
    updated_at: Optional[datetime]

    model_config = ConfigDict(from_attributes=True)


async def get_group_or_404(db: AsyncSession, group_id: int, lock: bool = False) -> Group:
    group = await db.get(Group, group_id, with_for_update=lock)
    if not group:
        raise NotFoundError("Group", group_id)
    return group


async def ensure_code_available(db: AsyncSession, code: str, exclude_id: Optional[int] = None):
    stmt = select(Group.id).filter(Group.code == code)
    if exclude_id is not None:
        stmt = stmt.filter(Group.id != exclude_id)
    if (await db.execute(stmt)).first():
        raise ConflictError("Group code already exists")


@router.get("")
async def list_groups(
        active: Optional[bool] = Query(default=None),
        available: Optional[bool] = Query(default=None),
        status: Optional[GroupStatus] = Query(default=None),
        search: Optional[str] = Query(default=None),
        db: AsyncSession = Depends(get_db),
        current_user: dict = Depends(require_permission(Permission.GROUPS_READ))
):
    try:
        stmt = select(Group)
        if active is not None:
            stmt = stmt.filter(Group.is_active == active)
        if available:
            stmt = stmt.filter(Group.is_active == True, Group.enrolled_count < Group.capacity)  # noqa: E712
        if status is not None:
            stmt = stmt.filter(Group.status == status.value)
        if search:
            like = f"%{search}%"
            stmt = stmt.filter(or_(
                Group.name.ilike(like),
                Group.code.ilike(like),
                Group.instructor.ilike(like)
            ))
        result = await db.execute(stmt.order_by(Group.id))
        groups = [GroupResponse.model_validate(g) for g in result.scalars().all()]
        return {"success": True, "count": len(groups), "data": groups}
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error getting groups: {e}")
        raise ServerError("Error retrieving groups", e)


@router.get("/{group_id}")
async def get_group(group_id: int, db: AsyncSession = Depends(get_db),
                    current_user: dict = Depends(require_permission(Permission.GROUPS_READ))):
    group = await get_group_or_404(db, group_id)
    return {"success": True, "data": GroupResponse.model_validate(group)}


@router.get("/{group_id}/availability")
async def get_group_availability(group_id: int, db: AsyncSession = Depends(get_db),
                                 current_user: dict = Depends(require_permission(Permission.GROUPS_READ))):
    group = await get_group_or_404(db, group_id)
    return {"success": True, "data": group_availability(group)}


@router.post("", status_code=201)
async def create_group(group: GroupCreate, db: AsyncSession = Depends(get_db),
                       current_user: dict = Depends(require_permission(Permission.GROUPS_WRITE))):
    try:
        await ensure_code_available(db, group.code)

        db_group = Group(
            code=group.code,
            name=group.name,
            term=group.term,
            instructor=group.instructor,
            description=group.description,
            capacity=group.capacity,
            enrolled_count=0,
            status=group.status.value,
            is_active=True
        )
        db.add(db_group)
        await db.commit()
        await db.refresh(db_group)
        logger.info(f"Group created: {db_group.id} ({db_group.code})")
        return {
            "success": True,
            "message": "Group created successfully",
            "data": GroupResponse.model_validate(db_group)
        }
    except HTTPException:
        await db.rollback()
        raise
    except Exception as e:
        logger.error(f"Error creating group: {e}")
        await db.rollback()
        raise ServerError("Error creating group", e)


@router.put("/{group_id}")
async def update_group(group_id: int, group: GroupUpdate, db: AsyncSession = Depends(get_db),
                       current_user: dict = Depends(require_permission(Permission.GROUPS_WRITE))):
    try:
        db_group = await get_group_or_404(db, group_id, lock=True)
        changes = {k: v for k, v in group.model_dump(exclude_unset=True).items() if v is not None}

        if "code" in changes and changes["code"] != db_group.code:
            await ensure_code_available(db, changes["code"], exclude_id=group_id)

        if "capacity" in changes and changes["capacity"] < db_group.enrolled_count:
            raise ValidationError(
                f"Capacity cannot be lower than the {db_group.enrolled_count} students already enrolled",
                field="capacity"
            )

        for field, value in changes.items():
            if isinstance(value, GroupStatus):
                value = value.value
            setattr(db_group, field, value)

        await db.commit()
        await db.refresh(db_group)
        logger.info(f"Group updated: {group_id}")
        return {
            "success": True,
            "message": "Group updated successfully",
            "data": GroupResponse.model_validate(db_group)
        }
    except HTTPException:
        await db.rollback()
        raise
    except Exception as e:
        logger.error(f"Error updating group: {e}")
        await db.rollback()
        raise ServerError("Error updating group", e)


@router.delete("/{group_id}")
async def deactivate_group(group_id: int, db: AsyncSession = Depends(get_db),
                           current_user: dict = Depends(require_permission(Permission.GROUPS_WRITE))):
    try:
        db_group = await get_group_or_404(db, group_id)
        db_group.is_active = False
        await db.commit()
        await db.refresh(db_group)
        logger.info(f"Group deactivated: {group_id}")
        return {
            "success": True,
            "message": "Group deactivated successfully",
            "data": GroupResponse.model_validate(db_group)
        }
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error deactivating group: {e}")
        await db.rollback()
        raise ServerError("Error deactivating group", e)
