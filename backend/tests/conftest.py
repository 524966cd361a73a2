import os
import tempfile
from datetime import datetime, timezone

# Point the app at a throwaway database before anything imports archetype.database
os.environ["DATABASE_URL"] = "sqlite:///{}".format(
    os.path.join(tempfile.mkdtemp(prefix="archetype-tests-"), "app.db"))
os.environ.pop("NOTIFICATION_WEBHOOK_URL", None)

import pytest
from sqlalchemy.orm import sessionmaker

from archetype.database import build_engine, create_tables
from archetype.models import Course, Enrollment, TestAttempt, User
from archetype.schemas import TestCreate
from archetype.services import test_definitions


class RecordingNotifier:
    """Notification emitter that keeps every event in memory."""

    def __init__(self, fail=False):
        self.fail = fail
        self.events = []

    def emit(self, user_id, event, payload):
        if self.fail:
            raise RuntimeError("notification service unreachable")
        self.events.append((user_id, event, payload))

    @property
    def names(self):
        return [event for _, event, _ in self.events]


class Seeder:
    """Creates collaborator rows (users, courses, enrollments) and tests."""

    def __init__(self, db):
        self.db = db
        self._count = 0

    def _next(self):
        self._count += 1
        return self._count

    def user(self, role="learner", supervisor=None, is_active=True, name=None):
        n = self._next()
        user = User(
            email="user{}@example.com".format(n),
            full_name=name or "User {}".format(n),
            role=role,
            phone_number="+1555000{:04d}".format(n),
            supervisor_id=supervisor.id if supervisor else None,
            is_active=is_active,
        )
        self.db.add(user)
        self.db.commit()
        return user

    def course(self, title=None):
        course = Course(title=title or "Course {}".format(self._next()))
        self.db.add(course)
        self.db.commit()
        return course

    def enroll(self, user, course, completed=False):
        enrollment = Enrollment(
            user_id=user.id,
            course_id=course.id,
            completed_at=datetime.now(timezone.utc) if completed else None,
        )
        self.db.add(enrollment)
        self.db.commit()
        return enrollment

    def test(self, course, creator, questions, test_type="multiple_choice",
             max_attempts=3, passing_score=70, title="Assessment"):
        payload = TestCreate(
            course_id=course.id,
            title=title,
            test_type=test_type,
            passing_score=passing_score,
            max_attempts=max_attempts,
            questions=questions,
        )
        return test_definitions.create_test(self.db, payload, creator_id=creator.id)

    def mc_test(self, course, creator, points=(1, 1), **kwargs):
        """Multiple choice test; option B of every question is correct."""
        questions = [
            {
                "question_text": "Question {}".format(i + 1),
                "points": p,
                "options": [
                    {"option_text": "A", "is_correct": False},
                    {"option_text": "B", "is_correct": True},
                    {"option_text": "C", "is_correct": False},
                ],
            }
            for i, p in enumerate(points)
        ]
        return self.test(course, creator, questions, **kwargs)

    def written_test(self, course, creator, points=(5, 5), **kwargs):
        questions = [
            {"question_text": "Explain topic {}".format(i + 1), "points": p}
            for i, p in enumerate(points)
        ]
        return self.test(course, creator, questions, test_type="written", **kwargs)

    def graded_attempt(self, test, user, score, attempt_number=1):
        now = datetime.now(timezone.utc)
        attempt = TestAttempt(
            test_id=test.id,
            user_id=user.id,
            status="graded",
            attempt_number=attempt_number,
            started_at=now,
            submitted_at=now,
            graded_at=now,
            score=score,
        )
        self.db.add(attempt)
        self.db.commit()
        return attempt

    @staticmethod
    def correct_option(question):
        return next(o for o in question.options if o.is_correct)

    @staticmethod
    def wrong_option(question):
        return next(o for o in question.options if not o.is_correct)

    @staticmethod
    def headers(user):
        return {"X-User-Id": user.id, "X-User-Role": user.role}


@pytest.fixture
def engine(tmp_path):
    engine = build_engine("sqlite:///{}".format(tmp_path / "test.db"))
    create_tables(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, autoflush=False)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def seed(db):
    return Seeder(db)


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def failing_notifier():
    return RecordingNotifier(fail=True)


@pytest.fixture
def client(session_factory, notifier):
    from fastapi.testclient import TestClient

    from archetype.database import get_db
    from archetype.main import app
    from archetype.services.notifications import get_notifier

    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_notifier] = lambda: notifier
    yield TestClient(app)
    app.dependency_overrides.clear()
