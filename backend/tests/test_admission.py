import threading
from concurrent.futures import ThreadPoolExecutor

import pytest

from archetype.errors import ConcurrencyConflictError, NotFoundError, QuotaExceededError
from archetype.models import TestAttempt
from archetype.schemas import AnswerSubmit
from archetype.services import admission, grading


def _numbers(db, test, user):
    db.expire_all()
    return sorted(
        a.attempt_number
        for a in db.query(TestAttempt).filter_by(test_id=test.id, user_id=user.id)
    )


def _competing_start(session_factory, test_id, user_id, number):
    """Commit an attempt with ``number`` from another session, like a parallel request would."""
    other = session_factory()
    try:
        other.add(TestAttempt(test_id=test_id, user_id=user_id,
                              status="in_progress", attempt_number=number))
        other.commit()
    finally:
        other.close()


def test_attempts_are_numbered_until_the_ceiling(db, seed):
    admin = seed.user(role="admin")
    learner = seed.user()
    test = seed.mc_test(seed.course(), admin, max_attempts=2)

    first = admission.start_attempt(db, test.id, learner.id)
    second = admission.start_attempt(db, test.id, learner.id)

    assert (first.attempt_number, second.attempt_number) == (1, 2)
    assert first.status == second.status == "in_progress"

    with pytest.raises(QuotaExceededError) as exc_info:
        admission.start_attempt(db, test.id, learner.id)

    assert exc_info.value.attempts_made == 2
    assert exc_info.value.max_attempts == 2
    assert exc_info.value.to_dict()["error"] == "max_attempts_reached"
    assert _numbers(db, test, learner) == [1, 2]


def test_attempt_counts_are_per_user(db, seed):
    admin = seed.user(role="admin")
    alice = seed.user()
    bob = seed.user()
    test = seed.mc_test(seed.course(), admin, max_attempts=1)

    admission.start_attempt(db, test.id, alice.id)
    attempt = admission.start_attempt(db, test.id, bob.id)

    assert attempt.attempt_number == 1


def test_unknown_test_is_not_found(db, seed):
    learner = seed.user()
    with pytest.raises(NotFoundError):
        admission.start_attempt(db, "missing", learner.id)


def test_colliding_start_is_retried_with_the_next_number(db, seed, session_factory, monkeypatch):
    admin = seed.user(role="admin")
    learner = seed.user()
    test = seed.mc_test(seed.course(), admin, max_attempts=3)
    test_id, learner_id = test.id, learner.id

    real_next = admission._next_attempt_number
    handed_out = []

    def racing_next(session, t_id, u_id):
        number = real_next(session, t_id, u_id)
        if not handed_out:
            _competing_start(session_factory, t_id, u_id, number)
        handed_out.append(number)
        return number

    monkeypatch.setattr(admission, "_next_attempt_number", racing_next)

    attempt = admission.start_attempt(db, test_id, learner_id)

    assert handed_out == [1, 2]
    assert attempt.attempt_number == 2
    assert _numbers(db, test, learner) == [1, 2]


def test_retry_still_enforces_the_ceiling(db, seed, session_factory, monkeypatch):
    admin = seed.user(role="admin")
    learner = seed.user()
    test = seed.mc_test(seed.course(), admin, max_attempts=2)
    test_id, learner_id = test.id, learner.id
    admission.start_attempt(db, test_id, learner_id)

    real_next = admission._next_attempt_number
    calls = []

    def racing_next(session, t_id, u_id):
        number = real_next(session, t_id, u_id)
        if not calls:
            _competing_start(session_factory, t_id, u_id, number)
        calls.append(number)
        return number

    monkeypatch.setattr(admission, "_next_attempt_number", racing_next)

    with pytest.raises(QuotaExceededError):
        admission.start_attempt(db, test_id, learner_id)

    assert calls == [2, 3]
    assert _numbers(db, test, learner) == [1, 2]


def test_collisions_that_use_up_the_quota_end_in_quota_exceeded(db, seed, session_factory,
                                                                monkeypatch):
    admin = seed.user(role="admin")
    learner = seed.user()
    test = seed.mc_test(seed.course(), admin, max_attempts=2)
    test_id, learner_id = test.id, learner.id

    real_next = admission._next_attempt_number
    handed_out = []

    def always_beaten(session, t_id, u_id):
        number = real_next(session, t_id, u_id)
        if number <= 2:
            _competing_start(session_factory, t_id, u_id, number)
        handed_out.append(number)
        return number

    monkeypatch.setattr(admission, "_next_attempt_number", always_beaten)

    with pytest.raises(QuotaExceededError) as exc_info:
        admission.start_attempt(db, test_id, learner_id)

    assert handed_out == [1, 2, 3]
    assert exc_info.value.attempts_made == 2
    assert _numbers(db, test, learner) == [1, 2]


def test_stale_reads_past_the_retries_are_settled_by_the_final_count(db, seed, session_factory,
                                                                     monkeypatch):
    admin = seed.user(role="admin")
    learner = seed.user()
    test = seed.mc_test(seed.course(), admin, max_attempts=2)
    test_id, learner_id = test.id, learner.id
    _competing_start(session_factory, test_id, learner_id, 1)
    _competing_start(session_factory, test_id, learner_id, 2)

    real_next = admission._next_attempt_number
    calls = []

    def stale_next(session, t_id, u_id):
        calls.append(1)
        # The first three reads miss the committed attempts
        return 1 if len(calls) <= 3 else real_next(session, t_id, u_id)

    monkeypatch.setattr(admission, "_next_attempt_number", stale_next)

    with pytest.raises(QuotaExceededError):
        admission.start_attempt(db, test_id, learner_id)

    assert len(calls) == 4
    assert _numbers(db, test, learner) == [1, 2]


def test_stuck_attempt_number_surfaces_as_conflict(db, seed, session_factory, monkeypatch):
    admin = seed.user(role="admin")
    learner = seed.user()
    test = seed.mc_test(seed.course(), admin, max_attempts=3)
    test_id, learner_id = test.id, learner.id
    _competing_start(session_factory, test_id, learner_id, 1)

    monkeypatch.setattr(admission, "_next_attempt_number", lambda session, t_id, u_id: 1)

    with pytest.raises(ConcurrencyConflictError):
        admission.start_attempt(db, test_id, learner_id)

    assert _numbers(db, test, learner) == [1]


def test_concurrent_starts_respect_the_ceiling(db, seed, session_factory):
    admin = seed.user(role="admin")
    learner = seed.user()
    test = seed.mc_test(seed.course(), admin, max_attempts=3)
    test_id, learner_id = test.id, learner.id
    starters = 8
    barrier = threading.Barrier(starters)

    def start(_):
        session = session_factory()
        try:
            barrier.wait()
            try:
                return admission.start_attempt(session, test_id, learner_id).attempt_number
            except QuotaExceededError:
                return "quota"
        finally:
            session.close()

    with ThreadPoolExecutor(max_workers=starters) as pool:
        outcomes = list(pool.map(start, range(starters)))

    assert sorted(o for o in outcomes if o != "quota") == [1, 2, 3]
    assert outcomes.count("quota") == starters - 3
    assert _numbers(db, test, learner) == [1, 2, 3]

def test_start_payload_hides_answer_keys(db, seed):
    admin = seed.user(role="admin")
    learner = seed.user()
    test = seed.mc_test(seed.course(), admin, points=(2, 3), max_attempts=2)

    payload = admission.start_attempt_payload(db, test.id, learner.id)

    assert payload["attempt_number"] == 1
    assert payload["status"] == "in_progress"
    assert payload["test_info"]["max_attempts"] == 2
    assert payload["test_info"]["passing_score"] == 70
    assert [q["points"] for q in payload["questions"]] == [2, 3]
    for question in payload["questions"]:
        assert all("is_correct" not in o for o in question["options"])


def test_two_attempt_single_question_scenario(db, seed):
    admin = seed.user(role="admin")
    learner = seed.user()
    test = seed.mc_test(seed.course(), admin, points=(1,), max_attempts=2)
    question = test.questions[0]

    first = admission.start_attempt(db, test.id, learner.id)
    result = grading.submit_attempt(
        db, first.id, learner.id,
        [AnswerSubmit(question_id=question.id,
                      selected_option_id=seed.correct_option(question).id)])
    assert (result["status"], result["score"], result["passed"]) == ("graded", 100.0, True)

    admission.start_attempt(db, test.id, learner.id)
    with pytest.raises(QuotaExceededError):
        admission.start_attempt(db, test.id, learner.id)
