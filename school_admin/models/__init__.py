from .student import Student, StudentStatus
from .group import Group, GroupStatus
from .enrollment import Enrollment, EnrollmentStatus
from .user import User

__all__ = [
    "Student",
    "StudentStatus",
    "Group",
    "GroupStatus",
    "Enrollment",
    "EnrollmentStatus",
    "User"
]
