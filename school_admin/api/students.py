from datetime import datetime
from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, or_
from sqlalchemy.exc import IntegrityError
from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator
from typing import Optional
from ..core.database import get_db
from ..core.exceptions import ConflictError, NotFoundError, ServerError
from ..core.permissions import Permission, require_permission
from ..models.student import Student, StudentStatus
from ..services.enrollment_manager import EnrollmentManager
from ..utils.code_generator import generate_matricula
import logging

logger = logging.getLogger(__name__)
router = APIRouter()


def blank_to_none(value: Optional[str]) -> Optional[str]:
    if value is not None:
        value = value.strip()
    return value or None


class StudentCreate(BaseModel):
    name: str = Field(min_length=1)
    email: EmailStr
    matricula: Optional[str] = None
    age: Optional[int] = Field(default=None, ge=0)
    phone: str = ""
    address: str = ""
    status: StudentStatus = StudentStatus.ACTIVE

    @field_validator("matricula")
    @classmethod
    def blank_matricula_is_none(cls, value):
        return blank_to_none(value)


class StudentUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1)
    email: Optional[EmailStr] = None
    matricula: Optional[str] = None
    age: Optional[int] = Field(default=None, ge=0)
    phone: Optional[str] = None
    address: Optional[str] = None
    status: Optional[StudentStatus] = None
    is_active: Optional[bool] = None

    @field_validator("matricula")
    @classmethod
    def blank_matricula_is_none(cls, value):
        return blank_to_none(value)


class StudentResponse(BaseModel):
    id: int
    matricula: Optional[str]
    name: str
    age: Optional[int]
    email: str
    phone: Optional[str]
    address: Optional[str]
    status: str
    is_active: bool
    created_at: Optional[datetime]
    updated_at: Optional[datetime]

    model_config = ConfigDict(from_attributes=True)


async def get_student_or_404(db: AsyncSession, student_id: int) -> Student:
    student = await db.get(Student, student_id)
    if not student:
        raise NotFoundError("Student", student_id)
    return student


async def ensure_unique(db: AsyncSession, email: Optional[str], matricula: Optional[str],
                        exclude_id: Optional[int] = None):
    if email:
        stmt = select(Student.id).filter(Student.email == email)
        if exclude_id is not None:
            stmt = stmt.filter(Student.id != exclude_id)
        if (await db.execute(stmt)).first():
            raise ConflictError("Email already registered")
    if matricula:
        stmt = select(Student.id).filter(Student.matricula == matricula)
        if exclude_id is not None:
            stmt = stmt.filter(Student.id != exclude_id)
        if (await db.execute(stmt)).first():
            raise ConflictError("Matricula already registered")


@router.get("")
async def list_students(
        active: Optional[bool] = Query(default=None),
        status: Optional[StudentStatus] = Query(default=None),
        search: Optional[str] = Query(default=None),
        db: AsyncSession = Depends(get_db),
        current_user: dict = Depends(require_permission(Permission.STUDENTS_READ))
):
    try:
        stmt = select(Student)
        if active is not None:
            stmt = stmt.filter(Student.is_active == active)
        if status is not None:
            stmt = stmt.filter(Student.status == status.value)
        if search:
            like = f"%{search}%"
            stmt = stmt.filter(or_(
                Student.name.ilike(like),
                Student.email.ilike(like),
                Student.matricula.ilike(like)
            ))
        result = await db.execute(stmt.order_by(Student.id))
        students = [StudentResponse.model_validate(s) for s in result.scalars().all()]
        return {"success": True, "count": len(students), "data": students}
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error getting students: {e}")
        raise ServerError("Error retrieving students", e)


@router.get("/{student_id}")
async def get_student(student_id: int, db: AsyncSession = Depends(get_db),
                      current_user: dict = Depends(require_permission(Permission.STUDENTS_READ))):
    student = await get_student_or_404(db, student_id)
    return {"success": True, "data": StudentResponse.model_validate(student)}


@router.post("", status_code=201)
async def create_student(student: StudentCreate, db: AsyncSession = Depends(get_db),
                         current_user: dict = Depends(require_permission(Permission.STUDENTS_WRITE))):
    try:
        email = student.email.lower()
        await ensure_unique(db, email, student.matricula)

        db_student = Student(
            name=student.name,
            email=email,
            matricula=student.matricula,
            age=student.age,
            phone=student.phone,
            address=student.address,
            status=student.status.value,
            is_active=True
        )
        db.add(db_student)
        await db.flush()
        if not db_student.matricula:
            db_student.matricula = await generate_matricula(db, db_student.id)

        await db.commit()
        await db.refresh(db_student)
        logger.info(f"Student created: {db_student.id} ({db_student.email})")
        return {
            "success": True,
            "message": "Student created successfully",
            "data": StudentResponse.model_validate(db_student)
        }
    except IntegrityError as e:
        logger.warning(f"Integrity error on student write: {e}")
        await db.rollback()
        raise ConflictError("Email or matricula already registered")
    except HTTPException:
        await db.rollback()
        raise
    except Exception as e:
        logger.error(f"Error creating student: {e}")
        await db.rollback()
        raise ServerError("Error creating student", e)


@router.put("/{student_id}")
async def update_student(student_id: int, student: StudentUpdate, db: AsyncSession = Depends(get_db),
                         current_user: dict = Depends(require_permission(Permission.STUDENTS_WRITE))):
    try:
        db_student = await get_student_or_404(db, student_id)
        changes = student.model_dump(exclude_unset=True)

        if changes.get("email"):
            changes["email"] = changes["email"].lower()
        new_email = changes.get("email")
        new_matricula = changes.get("matricula")
        await ensure_unique(
            db,
            new_email if new_email != db_student.email else None,
            new_matricula if new_matricula != db_student.matricula else None,
            exclude_id=student_id
        )

        for field, value in changes.items():
            if value is None and field in ("name", "email", "status", "is_active"):
                continue
            if isinstance(value, StudentStatus):
                value = value.value
            setattr(db_student, field, value)

        await db.commit()
        await db.refresh(db_student)
        logger.info(f"Student updated: {student_id}")
        return {
            "success": True,
            "message": "Student updated successfully",
            "data": StudentResponse.model_validate(db_student)
        }
    except IntegrityError as e:
        logger.warning(f"Integrity error on student write: {e}")
        await db.rollback()
        raise ConflictError("Email or matricula already registered")
    except HTTPException:
        await db.rollback()
        raise
    except Exception as e:
        logger.error(f"Error updating student: {e}")
        await db.rollback()
        raise ServerError("Error updating student", e)


@router.delete("/{student_id}")
async def deactivate_student(student_id: int, db: AsyncSession = Depends(get_db),
                             current_user: dict = Depends(require_permission(Permission.STUDENTS_WRITE))):
    try:
        db_student = await get_student_or_404(db, student_id)
        db_student.is_active = False
        await db.commit()
        await db.refresh(db_student)
        logger.info(f"Student deactivated: {student_id}")
        return {
            "success": True,
            "message": "Student deactivated successfully",
            "data": StudentResponse.model_validate(db_student)
        }
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error deactivating student: {e}")
        await db.rollback()
        raise ServerError("Error deactivating student", e)


@router.delete("/{student_id}/permanent")
async def delete_student(student_id: int, db: AsyncSession = Depends(get_db),
                         current_user: dict = Depends(require_permission(Permission.STUDENTS_DELETE))):
    try:
        db_student = await get_student_or_404(db, student_id)
        deleted = StudentResponse.model_validate(db_student)

        await EnrollmentManager(db).release_student(student_id)
        await db.delete(db_student)
        await db.commit()
        logger.info(f"Student permanently deleted: {student_id}")
        return {"success": True, "message": "Student permanently deleted", "data": deleted}
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error deleting student: {e}")
        await db.rollback()
        raise ServerError("Error deleting student", e)
