from archetype.models.user import User
from archetype.models.course import Course, Enrollment
from archetype.models.test import Test, TestQuestion, QuestionOption
from archetype.models.attempt import TestAttempt, TestAnswer, AttemptFlag
from archetype.models.skill import Skill, CourseSkill, UserSkill
from archetype.models.notification import Notification

__all__ = [
    "User", "Course", "Enrollment", "Test", "TestQuestion", "QuestionOption",
    "TestAttempt", "TestAnswer", "AttemptFlag", "Skill", "CourseSkill", "UserSkill",
    "Notification",
]
