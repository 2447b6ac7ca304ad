"""Initial data: the protected admin account and an optional demo school."""
from sqlalchemy import select, func, delete
from sqlalchemy.ext.asyncio import AsyncSession
from .auth import get_password_hash
from .config import settings
from ..models.enrollment import Enrollment
from ..models.group import Group
from ..models.student import Student
from ..models.user import User
import logging

logger = logging.getLogger(__name__)

DEMO_STUDENTS = [
    ("STU-000001", "Alice Jimenez", 20, "alice@school.edu", "555-0001", "101 Main St", "active", True),
    ("STU-000002", "Robert Sanchez", 21, "robert@school.edu", "555-0002", "202 Central Ave", "active", True),
    ("STU-000003", "Charles Moreno", 19, "charles@school.edu", "555-0003", "303 North Blvd", "active", True),
    ("STU-000004", "Diana Prince", 22, "diana@school.edu", "555-0004", "404 South St", "active", True),
    ("STU-000005", "Edward Navarro", 20, "edward@school.edu", "555-0005", "505 East Ave", "active", True),
    ("STU-000006", "Fernanda Acosta", 21, "fernanda@school.edu", "555-0006", "606 West St", "active", True),
    ("STU-000007", "Gabriel Martinez", 19, "gabriel@school.edu", "555-0007", "707 Center Blvd", "active", True),
    ("STU-000008", "Hector Montes", 22, "hector@school.edu", "555-0008", "808 First Ave", "active", True),
    ("STU-000009", "Isabel Morales", 20, "isabel@school.edu", "555-0009", "909 Second St", "suspended", True),
    ("STU-000010", "Juana Diaz", 21, "juana@school.edu", "555-0010", "1010 Third Blvd", "withdrawn", False),
]

DEMO_GROUPS = [
    ("SUB-001-2024-1-A", "Mathematics I", "2024-1", "Dr. Anderson", "Core mathematics course", 30, "open"),
    ("SUB-002-2024-1-A", "Programming", "2024-1", "Prof. Williams", "Introduction to programming", 25, "open"),
    ("SUB-003-2024-1-A", "Physics", "2024-1", "Dr. Martinez", "Basic and applied physics", 30, "open"),
    ("SUB-004-2024-1-A", "History", "2024-1", "Prof. Davis", "World history", 35, "open"),
    ("SUB-005-2024-1-A", "English", "2024-1", "Dr. Thompson", "Intermediate English", 28, "open"),
    ("SUB-001-2024-1-B", "Mathematics I", "2024-1", "Dr. Wilson", "Core mathematics course - Group B", 30, "open"),
    ("SUB-002-2024-1-B", "Programming", "2024-1", "Prof. Garcia", "Introduction to programming - Group B", 25, "closed"),
]

# (student index, group index) into the lists above
DEMO_ENROLLMENTS = [
    (0, 0), (0, 1),
    (1, 0), (1, 1),
    (2, 0), (2, 2),
    (3, 2), (3, 3),
    (4, 1), (4, 3),
    (5, 3), (5, 4),
    (6, 1), (6, 4),
    (7, 4),
]


async def ensure_admin_user(session: AsyncSession) -> User:
    """Create the protected admin account if it does not exist yet"""
    admin = await session.get(User, settings.admin_user_id)
    if admin:
        return admin

    admin = User(
        id=settings.admin_user_id,
        name=settings.admin_name,
        email=settings.admin_email.lower(),
        hashed_password=get_password_hash(settings.admin_password),
        role="admin",
        is_active=True
    )
    session.add(admin)
    await session.commit()
    logger.info(f"Admin user '{admin.id}' created")
    return admin


async def seed_demo_data(session: AsyncSession) -> bool:
    """Load the demo school when there are no students yet"""
    from ..services.enrollment_manager import EnrollmentManager

    student_count = (await session.execute(select(func.count(Student.id)))).scalar()
    if student_count:
        logger.info("Database already contains data, skipping demo seed")
        return False

    logger.info("Seeding demo school data...")
    students = [
        Student(matricula=m, name=n, age=a, email=e, phone=p, address=addr, status=s, is_active=act)
        for m, n, a, e, p, addr, s, act in DEMO_STUDENTS
    ]
    groups = [
        Group(code=c, name=n, term=t, instructor=i, description=d, capacity=cap, enrolled_count=0, status=s)
        for c, n, t, i, d, cap, s in DEMO_GROUPS
    ]
    session.add_all(students + groups)
    await session.commit()
    logger.info(f"{len(students)} students and {len(groups)} groups created")

    manager = EnrollmentManager(session)
    for student_index, group_index in DEMO_ENROLLMENTS:
        await manager.enroll(students[student_index].id, groups[group_index].id)
    logger.info(f"{len(DEMO_ENROLLMENTS)} enrollments created")
    return True


async def clear_all_data(session: AsyncSession):
    """Delete every row, then recreate the admin account"""
    logger.warning("Clearing all data...")
    for model in (Enrollment, Student, Group, User):
        await session.execute(delete(model))
    await session.commit()
    logger.info("All data cleared")
    await ensure_admin_user(session)


async def reset_database(session: AsyncSession):
    await clear_all_data(session)
    await seed_demo_data(session)
    logger.info("Database reset completed")
