from sqlalchemy import Column, Integer, String, Boolean, DateTime, Text, CheckConstraint
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
import enum
from ..core.database import Base


class GroupStatus(str, enum.Enum):
    OPEN = "open"
    CLOSED = "closed"


class Group(Base):
    __tablename__ = "groups"
    __table_args__ = (
        CheckConstraint("capacity > 0", name="ck_groups_capacity_positive"),
        CheckConstraint(
            "enrolled_count >= 0 AND enrolled_count <= capacity",
            name="ck_groups_enrolled_within_capacity"
        ),
    )

    id = Column(Integer, primary_key=True, index=True)
    code = Column(String, unique=True, index=True, nullable=False)
    name = Column(String, nullable=False)
    term = Column(String, default="")
    instructor = Column(String, default="")
    description = Column(Text, default="")
    capacity = Column(Integer, nullable=False, default=30)
    # Only the enrollment manager writes this column
    enrolled_count = Column(Integer, nullable=False, default=0)
    status = Column(String, nullable=False, default=GroupStatus.OPEN.value)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    enrollments = relationship("Enrollment", back_populates="group")
