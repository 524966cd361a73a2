"""
Pydantic request schemas shared by the routes and services.

Shape violations (missing fields, bad enums, empty lists, out-of-range
numbers) are rejected here before any database work happens.
"""

from typing import List, Literal, Optional

from pydantic import BaseModel, Field, field_validator, model_validator

QuestionType = Literal["multiple_choice", "written", "coding"]


class OptionCreate(BaseModel):
    option_text: str = Field(..., min_length=1)
    is_correct: bool = False


class QuestionCreate(BaseModel):
    question_text: str = Field(..., min_length=1)
    question_type: Optional[QuestionType] = Field(None, description="Defaults to the test type")
    points: int = Field(1, gt=0)
    options: List[OptionCreate] = Field(default_factory=list)


class TestCreate(BaseModel):
    """Body of POST /api/tests."""
    __test__ = False

    course_id: str
    title: str = Field(..., min_length=1)
    description: Optional[str] = None
    test_type: QuestionType
    passing_score: Optional[int] = Field(None, ge=0, le=100)
    time_limit_minutes: Optional[int] = Field(None, gt=0)
    max_attempts: Optional[int] = Field(None, ge=1)
    questions: List[QuestionCreate] = Field(..., min_length=1)

    @field_validator("title")
    @classmethod
    def strip_title(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("title cannot be blank")
        return value

    @model_validator(mode="after")
    def check_options(self):
        # Question type falls back to the test type
        for position, question in enumerate(self.questions, start=1):
            question_type = question.question_type or self.test_type
            if question_type == "multiple_choice" and not question.options:
                raise ValueError(
                    "question {} is multiple_choice and needs at least one option".format(position))
            if question_type != "multiple_choice" and question.options:
                raise ValueError(
                    "question {} is {} and cannot carry options".format(position, question_type))
        return self


class AnswerSubmit(BaseModel):
    question_id: str
    answer_text: Optional[str] = None
    selected_option_id: Optional[str] = None


class SubmitRequest(BaseModel):
    attempt_id: str
    answers: List[AnswerSubmit] = Field(..., min_length=1)


class AnswerGrade(BaseModel):
    question_id: str
    points_awarded: float
    feedback: Optional[str] = None


class GradeRequest(BaseModel):
    attempt_id: Optional[str] = Field(None, description="Optional; must match the path when given")
    answers: List[AnswerGrade] = Field(..., min_length=1)
    feedback: Optional[str] = None


class FlagRequest(BaseModel):
    reason: str


class SkillCreate(BaseModel):
    name: str = Field(..., min_length=1)
    description: Optional[str] = None


class CourseSkillLink(BaseModel):
    course_id: str
    skill_id: str
    weight: float = Field(1.0, ge=0, le=1)


class SkillRecalculateRequest(BaseModel):
    supervisor_rating: Optional[float] = Field(None, ge=0, le=5)
