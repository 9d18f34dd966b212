import pytest
from fastapi import HTTPException
from fastapi.testclient import TestClient

from lms_service.dependencies import get_current_principal
from lms_service.main import app


@pytest.fixture
def client_as(world, principals):
    def make(name):
        principal = principals[name]
        app.dependency_overrides[get_current_principal] = lambda: principal
        return TestClient(app)

    yield make
    app.dependency_overrides.clear()


def test_health(temp_db):
    assert TestClient(app).get("/health").json() == {"status": "ok"}


def test_missing_session_is_unauthorized(world):
    response = TestClient(app).get("/api/courses")
    assert response.status_code == 401


def test_instructor_creates_course(client_as):
    response = client_as("owner").post("/api/courses", json={"title": "  Data Science  "})
    assert response.status_code == 201
    body = response.json()
    assert body["success"] is True
    assert body["data"]["title"] == "Data Science"


def test_denial_maps_to_403_with_reason(client_as, world):
    response = client_as("other_instructor").post(f"/api/courses/{world['course']}/modules", json={"title": "Mine"})
    assert response.status_code == 403
    assert response.json() == {"success": False, "error": "not course owner", "reason": "not_owner"}


def test_missing_entity_maps_to_404(client_as):
    response = client_as("admin").get("/api/lessons/9999")
    assert response.status_code == 404
    assert response.json()["error"] == "Lesson not found"


def test_validation_failure_maps_to_400_with_issues(client_as, world):
    response = client_as("student").post(
        f"/api/lessons/{world['lesson']}/quizzes/submit",
        json={"answers": {str(world["quiz_mc"]): "B"}},
    )
    assert response.status_code == 400
    body = response.json()
    assert body["success"] is False
    assert len(body["issues"]) == 2


def test_duplicate_enrollment_maps_to_409(client_as, world):
    client = client_as("outsider")
    assert client.post(f"/api/courses/{world['course']}/enroll").status_code == 201
    second = client.post(f"/api/courses/{world['course']}/enroll")
    assert second.status_code == 409
    assert second.json()["error"] == "Already enrolled in this course"


def test_quiz_submission_over_http(client_as, world):
    answers = {str(world["quiz_mc"]): "B", str(world["quiz_tf"]): "false", str(world["quiz_text"]): "paris"}
    response = client_as("student").post(f"/api/lessons/{world['lesson']}/quizzes/submit", json={"answers": answers})
    assert response.status_code == 200
    data = response.json()["data"]
    assert data["earned_points"] == 3
    assert data["score"] == 75


def test_bulk_grade_over_http(client_as, world):
    submission = client_as("student").post(
        f"/api/assignments/{world['assignment_open']}/submissions", json={"content": "essay"}
    ).json()["data"]
    response = client_as("owner").post(
        f"/api/assignments/{world['assignment_open']}/grades/bulk",
        json={"grades": [{"submission_id": submission["id"], "grade": 95}, {"submission_id": 777, "grade": 10}]},
    )
    assert response.status_code == 200
    assert response.json()["data"]["summary"] == {"total": 2, "succeeded": 1, "failed": 1}


def test_admin_role_change(client_as, world):
    response = client_as("admin").put(f"/admin/users/{world['student']}/role", json={"role": "instructor"})
    assert response.status_code == 200
    assert response.json()["data"]["role"] == "instructor"

    denied = client_as("owner").put(f"/admin/users/{world['student']}/role", json={"role": "admin"})
    assert denied.status_code == 403


def test_roster_and_own_submissions_over_http(client_as, world):
    client_as("student").post(f"/api/assignments/{world['assignment_open']}/submissions", json={"content": "essay"})
    mine = client_as("student").get("/api/submissions/me")
    assert mine.status_code == 200
    assert [entry["assignment_title"] for entry in mine.json()["data"]] == ["Open"]

    roster = client_as("owner").get(f"/api/courses/{world['course']}/enrollments", params={"completed": "false"})
    assert roster.status_code == 200
    assert roster.json()["data"]["total"] == 1

    status = client_as("outsider").get(f"/api/courses/{world['course']}/enrollment-status")
    assert status.json()["data"]["is_enrolled"] is False


def test_deleted_user_loses_access(client_as, world, run_db):
    response = client_as("admin").delete(f"/admin/users/{world['outsider']}")
    assert response.status_code == 200
    assert response.json()["message"] == "User deleted successfully"

    async def lookup(db):
        return await get_current_principal(user_id=world["outsider"], db=db)

    with pytest.raises(HTTPException) as excinfo:
        run_db(lookup)
    assert excinfo.value.status_code == 401
