from datetime import date
from sqlalchemy import Column, Integer, String, Float, Date, DateTime, Text, ForeignKey, Index, text
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
import enum
from ..core.database import Base


class EnrollmentStatus(str, enum.Enum):
    ENROLLED = "enrolled"
    IN_PROGRESS = "in-progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class Enrollment(Base):
    __tablename__ = "enrollments"
    __table_args__ = (
        # At most one seat-holding enrollment per (student, group)
        Index(
            "uq_enrollments_enrolled_pair",
            "student_id",
            "group_id",
            unique=True,
            postgresql_where=text("status = 'enrolled'"),
            sqlite_where=text("status = 'enrolled'"),
        ),
    )

    id = Column(Integer, primary_key=True, index=True)
    student_id = Column(Integer, ForeignKey("students.id"), nullable=False, index=True)
    group_id = Column(Integer, ForeignKey("groups.id"), nullable=False, index=True)
    enrollment_date = Column(Date, nullable=False, default=date.today)
    status = Column(String, nullable=False, default=EnrollmentStatus.ENROLLED.value)
    grade = Column(Float, nullable=True)
    attendance = Column(Float, nullable=True)
    notes = Column(Text, default="")
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    student = relationship("Student", back_populates="enrollments")
    group = relationship("Group", back_populates="enrollments")
