from datetime import date, datetime
from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession
from pydantic import BaseModel, ConfigDict
from typing import Optional
from ..core.database import get_db
from ..core.exceptions import ServerError
from ..core.permissions import Permission, require_permission
from ..models.enrollment import EnrollmentStatus
from ..services.enrollment_manager import EnrollmentManager
import logging

logger = logging.getLogger(__name__)
router = APIRouter()


class EnrollmentCreate(BaseModel):
    student_id: int
    group_id: int
    notes: str = ""


class EnrollmentUpdate(BaseModel):
    # Range and vocabulary checks live in EnrollmentManager
    status: Optional[str] = None
    grade: Optional[float] = None
    attendance: Optional[float] = None
    notes: Optional[str] = None


class EnrollmentResponse(BaseModel):
    id: int
    student_id: int
    group_id: int
    enrollment_date: date
    status: str
    grade: Optional[float]
    attendance: Optional[float]
    notes: Optional[str]
    created_at: Optional[datetime]
    updated_at: Optional[datetime]

    model_config = ConfigDict(from_attributes=True)


def as_list_response(enrollments):
    data = [EnrollmentResponse.model_validate(e) for e in enrollments]
    return {"success": True, "count": len(data), "data": data}


@router.get("")
async def list_enrollments(
        student_id: Optional[int] = Query(default=None),
        group_id: Optional[int] = Query(default=None),
        status: Optional[EnrollmentStatus] = Query(default=None),
        db: AsyncSession = Depends(get_db),
        current_user: dict = Depends(require_permission(Permission.ENROLLMENTS_READ))
):
    try:
        enrollments = await EnrollmentManager(db).list(
            student_id=student_id,
            group_id=group_id,
            status=status.value if status else None
        )
        return as_list_response(enrollments)
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error getting enrollments: {e}")
        raise ServerError("Error retrieving enrollments", e)


@router.get("/stats/general")
async def get_enrollment_stats(db: AsyncSession = Depends(get_db),
                               current_user: dict = Depends(require_permission(Permission.ENROLLMENTS_READ))):
    try:
        return {"success": True, "data": await EnrollmentManager(db).stats()}
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error getting enrollment stats: {e}")
        raise ServerError("Error retrieving enrollment statistics", e)


@router.get("/student/{student_id}")
async def get_student_enrollments(student_id: int, db: AsyncSession = Depends(get_db),
                                  current_user: dict = Depends(require_permission(Permission.ENROLLMENTS_READ))):
    try:
        return as_list_response(await EnrollmentManager(db).for_student(student_id))
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error getting enrollments for student {student_id}: {e}")
        raise ServerError("Error retrieving student enrollments", e)


@router.get("/group/{group_id}")
async def get_group_enrollments(group_id: int, db: AsyncSession = Depends(get_db),
                                current_user: dict = Depends(require_permission(Permission.ENROLLMENTS_READ))):
    try:
        return as_list_response(await EnrollmentManager(db).for_group(group_id))
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error getting enrollments for group {group_id}: {e}")
        raise ServerError("Error retrieving group enrollments", e)


@router.get("/{enrollment_id}")
async def get_enrollment(enrollment_id: int, db: AsyncSession = Depends(get_db),
                         current_user: dict = Depends(require_permission(Permission.ENROLLMENTS_READ))):
    enrollment = await EnrollmentManager(db).get(enrollment_id)
    return {"success": True, "data": EnrollmentResponse.model_validate(enrollment)}


@router.post("", status_code=201)
async def create_enrollment(enrollment: EnrollmentCreate, db: AsyncSession = Depends(get_db),
                            current_user: dict = Depends(require_permission(Permission.ENROLLMENTS_WRITE))):
    try:
        db_enrollment = await EnrollmentManager(db).enroll(
            enrollment.student_id,
            enrollment.group_id,
            notes=enrollment.notes
        )
        return {
            "success": True,
            "message": "Enrollment created successfully",
            "data": EnrollmentResponse.model_validate(db_enrollment)
        }
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error creating enrollment: {e}")
        await db.rollback()
        raise ServerError("Error creating enrollment", e)


@router.put("/{enrollment_id}")
async def update_enrollment(enrollment_id: int, enrollment: EnrollmentUpdate, db: AsyncSession = Depends(get_db),
                            current_user: dict = Depends(require_permission(Permission.ENROLLMENTS_WRITE))):
    try:
        db_enrollment = await EnrollmentManager(db).update_enrollment(
            enrollment_id,
            enrollment.model_dump(exclude_unset=True)
        )
        return {
            "success": True,
            "message": "Enrollment updated successfully",
            "data": EnrollmentResponse.model_validate(db_enrollment)
        }
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error updating enrollment: {e}")
        await db.rollback()
        raise ServerError("Error updating enrollment", e)


@router.delete("/{enrollment_id}")
async def cancel_enrollment(enrollment_id: int, db: AsyncSession = Depends(get_db),
                            current_user: dict = Depends(require_permission(Permission.ENROLLMENTS_WRITE))):
    try:
        db_enrollment = await EnrollmentManager(db).cancel(enrollment_id)
        return {
            "success": True,
            "message": "Enrollment cancelled successfully",
            "data": EnrollmentResponse.model_validate(db_enrollment)
        }
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error cancelling enrollment: {e}")
        await db.rollback()
        raise ServerError("Error cancelling enrollment", e)
