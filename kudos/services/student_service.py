"""
kudos.services.student_service — Student Rows
==============================================

Lookups shared by every orchestrator.  Aggregate columns are never written
here; :mod:`kudos.services.ledger_service` owns them.
"""

from __future__ import annotations

import logging

from sqlalchemy.orm import Session

from kudos.database.models import Student
from kudos.errors import NotFound, ValidationError

logger = logging.getLogger(__name__)


def require_student(session: Session, student_id: int, *, for_update: bool = False) -> Student:
    """Fetch a student or raise :class:`NotFound`."""
    student = session.get(Student, student_id, with_for_update=for_update or None)
    if student is None:
        raise NotFound(f"Student {student_id} not found")
    return student


def create_student(engine, name: str, *, is_competition_team: bool = False) -> int:
    """Insert a student with zeroed aggregates and return its id."""
    name = (name or "").strip()
    if not name:
        raise ValidationError("Student name is required")
    with Session(engine) as session:
        student = Student(name=name[:150], is_competition_team=is_competition_team)
        session.add(student)
        session.commit()
        logger.info("Created student %d (%s)", student.id, student.name)
        return student.id


def set_competition_team(engine, student_id: int, member: bool) -> None:
    with Session(engine) as session:
        student = require_student(session, student_id)
        student.is_competition_team = member
        session.commit()
    logger.info("Student %d competition team → %s", student_id, member)
