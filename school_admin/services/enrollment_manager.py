"""Enrollment capacity management.

A group's ``enrolled_count`` caches the number of its enrollments with status
``enrolled``. Every change to that number goes through this module: the group
row is locked for the duration of the check-and-claim, and the counter itself
only moves through conditional UPDATE statements, so concurrent requests can
neither overshoot the capacity nor push the count below zero.
"""
from collections import Counter
from typing import Any, Dict, List, Optional
from fastapi import HTTPException
from sqlalchemy import select, update, delete, func, case
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from ..core.exceptions import ConflictError, NotFoundError, ValidationError
from ..models.enrollment import Enrollment, EnrollmentStatus
from ..models.group import Group
from ..models.student import Student
from ..utils.calculations import enrollment_stats
import logging

logger = logging.getLogger(__name__)

ENROLLED = EnrollmentStatus.ENROLLED.value
CANCELLED = EnrollmentStatus.CANCELLED.value
VALID_STATUSES = [status.value for status in EnrollmentStatus]
UPDATABLE_FIELDS = ("status", "grade", "attendance", "notes")


class EnrollmentManager:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def get(self, enrollment_id: int) -> Enrollment:
        enrollment = await self.db.get(Enrollment, enrollment_id)
        if not enrollment:
            raise NotFoundError("Enrollment", enrollment_id)
        return enrollment

    async def list(
        self,
        student_id: Optional[int] = None,
        group_id: Optional[int] = None,
        status: Optional[str] = None
    ) -> List[Enrollment]:
        stmt = select(Enrollment)
        if student_id is not None:
            stmt = stmt.filter(Enrollment.student_id == student_id)
        if group_id is not None:
            stmt = stmt.filter(Enrollment.group_id == group_id)
        if status is not None:
            stmt = stmt.filter(Enrollment.status == status)
        result = await self.db.execute(stmt.order_by(Enrollment.id))
        return list(result.scalars().all())

    async def for_student(self, student_id: int) -> List[Enrollment]:
        """Every enrollment of a student, whatever its status"""
        return await self.list(student_id=student_id)

    async def for_group(self, group_id: int) -> List[Enrollment]:
        """Seat-holding enrollments of a group"""
        return await self.list(group_id=group_id, status=ENROLLED)

    async def enroll(self, student_id: int, group_id: int, notes: str = "") -> Enrollment:
        """
        Enroll a student into a group.

        Checks run in a fixed order so the error is unambiguous: student
        exists, group exists, no enrolled record for the pair, free seat.
        """
        try:
            student = await self.db.get(Student, student_id)
            if not student:
                raise NotFoundError("Student", student_id)

            group = await self._lock_group(group_id)
            if not group:
                raise NotFoundError("Group", group_id)

            await self._ensure_not_enrolled(student_id, group_id)
            self._ensure_seat_available(group)
            await self._claim_seat(group)

            enrollment = Enrollment(
                student_id=student_id,
                group_id=group_id,
                status=ENROLLED,
                notes=notes or ""
            )
            self.db.add(enrollment)
            await self.db.commit()
            await self.db.refresh(enrollment)
            logger.info(f"Student {student_id} enrolled in group {group_id} (enrollment {enrollment.id})")
            return enrollment
        except IntegrityError as e:
            # Lost a race against a concurrent enrollment of the same pair
            logger.warning(f"Integrity error enrolling student {student_id} in group {group_id}: {e}")
            await self.db.rollback()
            raise ConflictError("Student is already enrolled in this group")
        except HTTPException:
            await self.db.rollback()
            raise

    async def update_enrollment(self, enrollment_id: int, changes: Dict[str, Any]) -> Enrollment:
        """
        Apply a partial update. Fields missing from ``changes`` are left
        untouched; status changes into or out of ``enrolled`` move the
        group's seat counter accordingly.
        """
        changes = {key: value for key, value in changes.items() if key in UPDATABLE_FIELDS}
        self._validate_changes(changes)

        try:
            enrollment = await self._lock_enrollment(enrollment_id)
            if not enrollment:
                raise NotFoundError("Enrollment", enrollment_id)

            new_status = changes.get("status", enrollment.status)
            if enrollment.status == ENROLLED and new_status != ENROLLED:
                await self._release_seat(enrollment.group_id)
            elif enrollment.status != ENROLLED and new_status == ENROLLED:
                group = await self._lock_group(enrollment.group_id)
                if not group:
                    raise NotFoundError("Group", enrollment.group_id)
                await self._ensure_not_enrolled(enrollment.student_id, enrollment.group_id)
                self._ensure_seat_available(group)
                await self._claim_seat(group)

            for field, value in changes.items():
                setattr(enrollment, field, value if field != "notes" else (value or ""))

            await self.db.commit()
            await self.db.refresh(enrollment)
            logger.info(f"Enrollment {enrollment_id} updated: {changes}")
            return enrollment
        except IntegrityError as e:
            logger.warning(f"Integrity error updating enrollment {enrollment_id}: {e}")
            await self.db.rollback()
            raise ConflictError("Student is already enrolled in this group")
        except HTTPException:
            await self.db.rollback()
            raise

    async def cancel(self, enrollment_id: int) -> Enrollment:
        """Cancel an enrollment; only a seat-holding one gives its seat back"""
        try:
            enrollment = await self._lock_enrollment(enrollment_id)
            if not enrollment:
                raise NotFoundError("Enrollment", enrollment_id)

            if enrollment.status == CANCELLED:
                logger.info(f"Enrollment {enrollment_id} already cancelled")
                await self.db.commit()
                return enrollment

            if enrollment.status == ENROLLED:
                await self._release_seat(enrollment.group_id)
            enrollment.status = CANCELLED

            await self.db.commit()
            await self.db.refresh(enrollment)
            logger.info(f"Enrollment {enrollment_id} cancelled")
            return enrollment
        except HTTPException:
            await self.db.rollback()
            raise

    async def release_student(self, student_id: int) -> int:
        """
        Delete every enrollment of a student, giving back the seats of the
        enrolled ones. Does not commit; the caller owns the transaction.
        """
        # Enrollment rows first, then groups, the same order cancel() takes
        result = await self.db.execute(
            select(Enrollment)
            .filter(Enrollment.student_id == student_id)
            .order_by(Enrollment.id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        enrollments = result.scalars().all()
        seats = Counter(e.group_id for e in enrollments if e.status == ENROLLED)
        for group_id in sorted(seats):
            await self._release_seat(group_id, seats[group_id])

        deleted = await self.db.execute(
            delete(Enrollment)
            .where(Enrollment.student_id == student_id)
        )
        logger.info(f"Removed {deleted.rowcount} enrollments of student {student_id}")
        return deleted.rowcount

    async def stats(self) -> Dict[str, Any]:
        result = await self.db.execute(
            select(Enrollment.status, func.count(Enrollment.id)).group_by(Enrollment.status)
        )
        return enrollment_stats(result.all())

    async def _lock_group(self, group_id: int) -> Optional[Group]:
        result = await self.db.execute(
            select(Group)
            .filter(Group.id == group_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def _lock_enrollment(self, enrollment_id: int) -> Optional[Enrollment]:
        result = await self.db.execute(
            select(Enrollment)
            .filter(Enrollment.id == enrollment_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def _ensure_not_enrolled(self, student_id: int, group_id: int):
        existing = await self.db.execute(
            select(Enrollment.id).filter(
                Enrollment.student_id == student_id,
                Enrollment.group_id == group_id,
                Enrollment.status == ENROLLED
            )
        )
        if existing.first() is not None:
            raise ConflictError("Student is already enrolled in this group")

    @staticmethod
    def _ensure_seat_available(group: Group):
        if group.enrolled_count >= group.capacity:
            raise ConflictError(f"Group is full. Maximum capacity: {group.capacity}")

    async def _claim_seat(self, group: Group):
        result = await self.db.execute(
            update(Group)
            .where(Group.id == group.id, Group.enrolled_count < Group.capacity)
            .values(enrolled_count=Group.enrolled_count + 1)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            raise ConflictError(f"Group is full. Maximum capacity: {group.capacity}")

    async def _release_seat(self, group_id: int, seats: int = 1):
        # Floored at zero
        await self.db.execute(
            update(Group)
            .where(Group.id == group_id)
            .values(enrolled_count=case(
                (Group.enrolled_count > seats, Group.enrolled_count - seats),
                else_=0
            ))
            .execution_options(synchronize_session=False)
        )

    @staticmethod
    def _validate_changes(changes: Dict[str, Any]):
        status = changes.get("status")
        if "status" in changes and status not in VALID_STATUSES:
            raise ValidationError(
                f"Invalid status. Must be one of: {', '.join(VALID_STATUSES)}",
                field="status"
            )
        for field in ("grade", "attendance"):
            value = changes.get(field)
            if value is not None and not 0 <= value <= 100:
                raise ValidationError(f"{field.capitalize()} must be between 0 and 100", field=field)
