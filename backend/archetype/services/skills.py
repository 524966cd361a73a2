"""
Skill Service - skill catalogue and per-user skill level aggregation.

Skill level formula, per skill the user's completed courses map to:
1. courses_completed = distinct completed courses linked to the skill
2. test_average = mean over those courses of the user's average graded
   test score in the course (0 for a course with no graded attempt)
3. raw = courses_completed * (test_average / 100) * supervisor_rating / 3
4. level = min(5, raw * 5)

Course-skill weights are stored for reporting but do not enter the level.
"""

import time
from datetime import datetime, timezone
from typing import Callable, Optional

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from archetype import config
from archetype.errors import (
    AssessmentError, DuplicateError, NotFoundError, PersistenceError, ValidationFailedError
)
from archetype.models.attempt import TestAttempt, STATUS_GRADED
from archetype.models.course import Course, Enrollment
from archetype.models.skill import Skill, CourseSkill, UserSkill
from archetype.models.test import Test
from archetype.models.user import User
from archetype.logging_config import get_logger, log_with_context

logger = get_logger("skills")

# (user_id, skill_id) -> rating in [0, 5]
SupervisorRatingProvider = Callable[[str, str], float]


def default_supervisor_rating(user_id: str, skill_id: str) -> float:
    return config.DEFAULT_SUPERVISOR_RATING


def compute_level(courses_completed: int, test_average: float, supervisor_rating: float) -> float:
    raw = (courses_completed * (test_average / 100.0) * supervisor_rating) / 3.0
    return min(config.MAX_SKILL_LEVEL, raw * 5.0)


def _completed_course_skills(db: Session, user_id: str) -> dict:
    """skill_id -> ordered list of distinct completed course ids."""
    rows = (
        db.query(CourseSkill.skill_id, CourseSkill.weight, Enrollment.course_id)
        .join(Enrollment, Enrollment.course_id == CourseSkill.course_id)
        .filter(Enrollment.user_id == user_id, Enrollment.completed_at.isnot(None))
        .order_by(CourseSkill.skill_id, Enrollment.course_id)
        .all()
    )
    skill_map = {}
    for skill_id, _weight, course_id in rows:
        courses = skill_map.setdefault(skill_id, [])
        if course_id not in courses:
            courses.append(course_id)
    return skill_map


def _course_test_averages(db: Session, user_id: str) -> dict:
    rows = (
        db.query(Test.course_id, func.avg(TestAttempt.score))
        .join(Test, TestAttempt.test_id == Test.id)
        .filter(TestAttempt.user_id == user_id, TestAttempt.status == STATUS_GRADED)
        .group_by(Test.course_id)
        .all()
    )
    return {course_id: float(avg) for course_id, avg in rows if avg is not None}


def recalculate_skills(db: Session, user_id: str, supervisor_rating: Optional[float] = None,
                       rating_provider: SupervisorRatingProvider = default_supervisor_rating) -> list:
    """
    Recompute and upsert every UserSkill row for ``user_id`` in one transaction.

    An explicit ``supervisor_rating`` applies to every skill; otherwise
    ``rating_provider`` is asked per skill.
    """
    start_time = time.time()

    if db.get(User, user_id) is None:
        raise NotFoundError("User not found", user_id=user_id)

    try:
        skill_map = _completed_course_skills(db, user_id)
        averages = _course_test_averages(db, user_id)
        now = datetime.now(timezone.utc)

        results = []
        for skill_id, courses in skill_map.items():
            courses_completed = len(courses)
            test_scores = [averages.get(course_id, 0.0) for course_id in courses]
            test_average = sum(test_scores) / len(test_scores)

            rating = supervisor_rating if supervisor_rating is not None \
                else rating_provider(user_id, skill_id)
            if rating < 0 or rating > config.MAX_SKILL_LEVEL:
                raise ValidationFailedError("supervisor_rating must be between 0 and 5",
                                            skill_id=skill_id)

            level = round(compute_level(courses_completed, test_average, rating), 2)
            test_average = round(test_average, 2)

            user_skill = db.get(UserSkill, (user_id, skill_id))
            if user_skill is None:
                user_skill = UserSkill(user_id=user_id, skill_id=skill_id)
                db.add(user_skill)
            user_skill.level = level
            user_skill.courses_completed = courses_completed
            user_skill.test_average = test_average
            user_skill.supervisor_rating = rating
            user_skill.last_calculated = now

            results.append({
                "skill_id": skill_id,
                "level": level,
                "courses_completed": courses_completed,
                "test_average": test_average,
                "supervisor_rating": rating,
            })

        db.commit()
    except AssessmentError:
        db.rollback()
        raise
    except SQLAlchemyError as e:
        db.rollback()
        log_with_context(logger, "ERROR", "Skill calculation failed: {}".format(e),
                         context={"user_id": user_id})
        raise PersistenceError("Failed to calculate skills") from e

    duration_ms = (time.time() - start_time) * 1000
    log_with_context(logger, "INFO",
        "Skills recalculated: {} skills".format(len(results)),
        context={"user_id": user_id},
        extra_data={"duration_ms": round(duration_ms, 2)})
    return results


def create_skill(db: Session, name: str, description: str = None) -> Skill:
    name = name.strip()
    if not name:
        raise ValidationFailedError("Skill name cannot be blank")
    skill = Skill(name=name, description=(description or "").strip() or None)
    db.add(skill)
    try:
        db.commit()
    except IntegrityError as e:
        db.rollback()
        raise DuplicateError("Skill already exists", name=name) from e
    db.refresh(skill)
    log_with_context(logger, "INFO", "Skill created: {}".format(name),
                     context={"skill_id": str(skill.id)})
    return skill


def list_skills(db: Session) -> list:
    rows = (
        db.query(Skill, func.count(CourseSkill.course_id))
        .outerjoin(CourseSkill, CourseSkill.skill_id == Skill.id)
        .group_by(Skill.id)
        .order_by(Skill.name)
        .all()
    )
    return [
        {
            "id": str(skill.id),
            "name": skill.name,
            "description": skill.description,
            "course_count": course_count,
        }
        for skill, course_count in rows
    ]


def link_course_skill(db: Session, course_id: str, skill_id: str, weight: float = 1.0) -> CourseSkill:
    if db.get(Course, course_id) is None:
        raise NotFoundError("Course not found", course_id=course_id)
    if db.get(Skill, skill_id) is None:
        raise NotFoundError("Skill not found", skill_id=skill_id)
    if weight < 0 or weight > 1:
        raise ValidationFailedError("weight must be between 0 and 1")

    link = CourseSkill(course_id=course_id, skill_id=skill_id, weight=weight)
    db.add(link)
    try:
        db.commit()
    except IntegrityError as e:
        db.rollback()
        raise DuplicateError("Skill already linked to this course",
                             course_id=course_id, skill_id=skill_id) from e
    log_with_context(logger, "INFO", "Skill linked to course",
                     context={"course_id": course_id, "skill_id": skill_id},
                     extra_data={"weight": weight})
    return link


def get_skill_profile(db: Session, user_id: str) -> list:
    rows = (
        db.query(UserSkill, Skill)
        .join(Skill, UserSkill.skill_id == Skill.id)
        .filter(UserSkill.user_id == user_id)
        .order_by(UserSkill.level.desc(), Skill.name)
        .all()
    )
    return [
        {
            "skill_id": str(us.skill_id),
            "skill_name": skill.name,
            "skill_description": skill.description,
            "level": us.level,
            "courses_completed": us.courses_completed,
            "test_average": us.test_average,
            "supervisor_rating": us.supervisor_rating,
            "last_calculated": us.last_calculated.isoformat() if us.last_calculated else None,
        }
        for us, skill in rows
    ]


def _contains_pattern(term: str) -> str:
    """LIKE pattern matching ``term`` literally anywhere, escaped with a backslash."""
    escaped = term.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    return "%{}%".format(escaped)


def search_users_by_skill(db: Session, skill_name: str, min_level: float = 0) -> list:
    rows = (
        db.query(User, UserSkill.level, Skill.name)
        .join(UserSkill, UserSkill.user_id == User.id)
        .join(Skill, UserSkill.skill_id == Skill.id)
        .filter(
            Skill.name.ilike(_contains_pattern(skill_name), escape="\\"),
            UserSkill.level >= min_level,
            User.is_active.is_(True),
        )
        .order_by(UserSkill.level.desc())
        .all()
    )
    return [
        {
            "id": str(user.id),
            "full_name": user.full_name,
            "email": user.email,
            "level": level,
            "skill_name": name,
        }
        for user, level, name in rows
    ]


def get_skill_graph(db: Session, user_id: str, limit: int = 10) -> list:
    rows = (
        db.query(Skill.name, UserSkill.level)
        .join(UserSkill, UserSkill.skill_id == Skill.id)
        .filter(UserSkill.user_id == user_id)
        .order_by(UserSkill.level.desc())
        .limit(limit)
        .all()
    )
    return [{"skill": name, "level": level} for name, level in rows]
