from archetype.models import Test

MC_TEST = {
    "title": "Python Basics",
    "test_type": "multiple_choice",
    "passing_score": 50,
    "max_attempts": 1,
    "questions": [
        {
            "question_text": "Which keyword defines a function?",
            "points": 2,
            "options": [
                {"option_text": "func"},
                {"option_text": "def", "is_correct": True},
            ],
        },
        {
            "question_text": "Which type is immutable?",
            "points": 2,
            "options": [
                {"option_text": "list"},
                {"option_text": "tuple", "is_correct": True},
            ],
        },
    ],
}


def _create_mc_test(client, seed, admin, course):
    resp = client.post("/api/tests", json={**MC_TEST, "course_id": course.id},
                       headers=seed.headers(admin))
    assert resp.status_code == 201
    return resp.json()


def test_health_and_request_id(client):
    resp = client.get("/health")

    assert resp.status_code == 200
    assert resp.json()["status"] == "healthy"
    assert resp.headers["X-Request-ID"]


def test_identity_headers_are_required(client):
    assert client.get("/api/tests/available").status_code == 401
    resp = client.get("/api/tests/available",
                      headers={"X-User-Id": "someone", "X-User-Role": "hacker"})
    assert resp.status_code == 403


def test_only_admins_create_tests(client, seed):
    learner = seed.user()
    course = seed.course()

    resp = client.post("/api/tests", json={**MC_TEST, "course_id": course.id},
                       headers=seed.headers(learner))

    assert resp.status_code == 403


def test_malformed_definition_is_rejected(client, seed):
    admin = seed.user(role="admin")
    course = seed.course()

    resp = client.post("/api/tests", json={**MC_TEST, "course_id": course.id, "questions": []},
                       headers=seed.headers(admin))

    assert resp.status_code == 422


def test_choice_question_without_options_is_rejected(client, db, seed):
    admin = seed.user(role="admin")
    course = seed.course()
    questions = [{"question_text": "Pick one", "points": 1, "options": []}]

    resp = client.post("/api/tests", json={**MC_TEST, "course_id": course.id, "questions": questions},
                       headers=seed.headers(admin))

    assert resp.status_code == 422
    assert db.query(Test).count() == 0


def test_unknown_course_maps_to_404(client, seed):
    admin = seed.user(role="admin")

    resp = client.post("/api/tests", json={**MC_TEST, "course_id": "missing"},
                       headers=seed.headers(admin))

    assert resp.status_code == 404
    assert resp.json()["error"] == "not_found"


def test_answer_keys_follow_the_role(client, seed):
    admin = seed.user(role="admin")
    learner = seed.user()
    created = _create_mc_test(client, seed, admin, seed.course())
    test_id = created["test"]["id"]

    as_admin = client.get(f"/api/tests/{test_id}", headers=seed.headers(admin)).json()
    as_learner = client.get(f"/api/tests/{test_id}", headers=seed.headers(learner)).json()

    assert [o["is_correct"] for o in as_admin["questions"][0]["options"]] == [False, True]
    assert all("is_correct" not in o for o in as_learner["questions"][0]["options"])
    assert as_learner["attempts_remaining"] == 1


def test_auto_graded_flow(client, seed, notifier):
    admin = seed.user(role="admin")
    learner = seed.user()
    course = seed.course()
    seed.enroll(learner, course)
    test_id = _create_mc_test(client, seed, admin, course)["test"]["id"]
    headers = seed.headers(learner)

    available = client.get("/api/tests/available", headers=headers).json()["tests"]
    assert [t["id"] for t in available] == [test_id]

    started = client.post(f"/api/tests/{test_id}/start", headers=headers)
    assert started.status_code == 201
    started = started.json()
    assert started["attempt_number"] == 1
    first, second = started["questions"]

    resp = client.post(f"/api/tests/{test_id}/submit", headers=headers, json={
        "attempt_id": started["attempt_id"],
        "answers": [
            {"question_id": first["id"], "selected_option_id": first["options"][1]["id"]},
            {"question_id": second["id"], "selected_option_id": second["options"][0]["id"]},
        ],
    })
    assert resp.status_code == 200
    result = resp.json()
    assert result["status"] == "graded"
    assert result["score"] == 50.0
    assert result["passed"] is True
    assert result["message"] == "Test graded successfully"
    assert notifier.names == ["graded-passed"]

    again = client.post(f"/api/tests/{test_id}/submit", headers=headers, json={
        "attempt_id": started["attempt_id"],
        "answers": [{"question_id": first["id"], "selected_option_id": first["options"][1]["id"]}],
    })
    assert again.status_code == 409
    assert again.json()["error"] == "invalid_state"

    over = client.post(f"/api/tests/{test_id}/start", headers=headers)
    assert over.status_code == 400
    assert over.json()["error"] == "max_attempts_reached"
    assert over.json()["max_attempts"] == 1

    assert client.get("/api/tests/available", headers=headers).json()["tests"] == []
    results = client.get("/api/attempts/results", headers=headers).json()["results"]
    assert [r["score"] for r in results] == [50.0]
    inbox = client.get("/api/notifications", headers=headers).json()["notifications"]
    assert len(inbox) == 1
    read = client.put(f"/api/notifications/{inbox[0]['id']}/read", headers=headers)
    assert read.status_code == 200


def test_manual_grading_flow(client, seed, notifier):
    admin = seed.user(role="admin")
    supervisor = seed.user(role="supervisor")
    stranger = seed.user(role="supervisor")
    learner = seed.user(supervisor=supervisor)
    test = seed.written_test(seed.course(), admin, points=(10,))
    test_id, question_id = test.id, test.questions[0].id
    headers = seed.headers(learner)

    attempt_id = client.post(f"/api/tests/{test_id}/start", headers=headers).json()["attempt_id"]
    submitted = client.post(f"/api/tests/{test_id}/submit", headers=headers, json={
        "attempt_id": attempt_id,
        "answers": [{"question_id": question_id, "answer_text": "Indexes speed up reads"}],
    }).json()
    assert submitted["status"] == "submitted"
    assert submitted["needs_grading"] is True

    pending = client.get("/api/attempts/pending", headers=seed.headers(supervisor)).json()
    assert [p["attempt_id"] for p in pending["pending_tests"]] == [attempt_id]
    assert client.get("/api/attempts/pending", headers=headers).status_code == 403

    grade_body = {"answers": [{"question_id": question_id, "points_awarded": 8}],
                  "feedback": "Nice"}
    denied = client.post(f"/api/attempts/{attempt_id}/grade", json=grade_body,
                         headers=seed.headers(stranger))
    assert denied.status_code == 403

    too_many = client.post(f"/api/attempts/{attempt_id}/grade",
                           json={"answers": [{"question_id": question_id, "points_awarded": 11}]},
                           headers=seed.headers(supervisor))
    assert too_many.status_code == 400
    assert too_many.json()["error"] == "validation_error"

    graded = client.post(f"/api/attempts/{attempt_id}/grade", json=grade_body,
                         headers=seed.headers(supervisor))
    assert graded.status_code == 200
    assert graded.json()["score"] == 80.0
    assert graded.json()["passed"] is True

    regrade = client.post(f"/api/attempts/{attempt_id}/grade", json=grade_body,
                          headers=seed.headers(supervisor))
    assert regrade.status_code == 409

    detail = client.get(f"/api/attempts/{attempt_id}", headers=headers).json()
    assert detail["graded_by"] == supervisor.id
    assert detail["answers"][0]["points_awarded"] == 8.0
    assert client.get(f"/api/attempts/{attempt_id}",
                      headers=seed.headers(stranger)).status_code == 403
    assert notifier.names == ["submitted-pending", "graded-passed"]


def test_grading_unknown_attempt_is_404(client, seed):
    supervisor = seed.user(role="supervisor")

    resp = client.post("/api/attempts/missing/grade",
                       json={"answers": [{"question_id": "q", "points_awarded": 1}]},
                       headers=seed.headers(supervisor))

    assert resp.status_code == 404


def test_flag_endpoint(client, seed, notifier):
    admin = seed.user(role="admin")
    learner = seed.user()
    test = seed.written_test(seed.course(), admin)
    test_id = test.id
    attempt_id = client.post(f"/api/tests/{test_id}/start",
                             headers=seed.headers(learner)).json()["attempt_id"]

    resp = client.post(f"/api/attempts/{attempt_id}/flag", json={"reason": "Tab switching"},
                       headers=seed.headers(admin))

    assert resp.status_code == 201
    assert resp.json()["reason"] == "Tab switching"
    assert notifier.names == ["flagged"]
    assert client.post(f"/api/attempts/{attempt_id}/flag", json={"reason": "x"},
                       headers=seed.headers(learner)).status_code == 403


def test_skill_endpoints(client, seed):
    admin = seed.user(role="admin")
    supervisor = seed.user(role="supervisor")
    learner = seed.user(supervisor=supervisor)
    course = seed.course()
    seed.enroll(learner, course, completed=True)
    test = seed.mc_test(course, admin)
    seed.graded_attempt(test, learner, 60.0)

    skill = client.post("/api/skills", json={"name": "Python"}, headers=seed.headers(admin))
    assert skill.status_code == 201
    skill_id = skill.json()["skill"]["id"]
    assert client.post("/api/skills", json={"name": "Python"},
                       headers=seed.headers(admin)).status_code == 409

    link = client.post("/api/skills/course-link",
                       json={"course_id": course.id, "skill_id": skill_id},
                       headers=seed.headers(admin))
    assert link.status_code == 201

    calc = client.post(f"/api/skills/calculate/{learner.id}", json={"supervisor_rating": 3},
                       headers=seed.headers(supervisor))
    assert calc.status_code == 200
    assert calc.json()["skills"][0]["level"] == 3.0

    bad_rating = client.post(f"/api/skills/calculate/{learner.id}",
                             json={"supervisor_rating": 9}, headers=seed.headers(supervisor))
    assert bad_rating.status_code == 422

    profile = client.get(f"/api/skills/user/{learner.id}", headers=seed.headers(learner)).json()
    assert profile["skill_profile"][0]["skill_name"] == "Python"

    search = client.get("/api/skills/search", params={"skill_name": "pyth"},
                        headers=seed.headers(admin)).json()
    assert [u["id"] for u in search["users"]] == [learner.id]
    assert client.get("/api/skills/search", headers=seed.headers(admin)).status_code == 400
