from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select
from ..models.student import Student

MATRICULA_PREFIX = "STU"


def format_matricula(student_id: int, attempt: int = 0) -> str:
    """STU-000042 for id 42; later attempts get a -N suffix"""
    code = f"{MATRICULA_PREFIX}-{student_id:06d}"
    if attempt:
        code = f"{code}-{attempt}"
    return code


async def generate_matricula(session: AsyncSession, student_id: int) -> str:
    """Generate a matricula from the student id that no other student holds"""
    attempt = 0
    code = format_matricula(student_id)
    while True:
        existing = await session.execute(select(Student.id).filter(Student.matricula == code))
        if existing.scalar_one_or_none() is None:
            return code
        attempt += 1
        code = format_matricula(student_id, attempt)
