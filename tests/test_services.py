from datetime import timedelta

import pytest

from lms_service import models
from lms_service.config import Settings
from lms_service.errors import AuthorizationDenied, ConflictError, DenyReason, NotFoundError, ValidationError
from lms_service.services import assignments, categories, courses, enrollments, quizzes, users
from lms_service.timeutils import utcnow


# Quizzes

def test_student_submits_quiz_and_attempt_is_recorded(run_db, world, principals):
    answers = {str(world["quiz_mc"]): "b", str(world["quiz_tf"]): True, str(world["quiz_text"]): " paris "}
    result = run_db(lambda db: quizzes.submit_answers(db, principals["student"], world["lesson"], answers))
    assert result["score"] == 100
    assert result["total_points"] == 4

    async def attempts(db):
        return (await db.execute(models.QuizAttempt.__table__.select())).all()

    rows = run_db(attempts)
    assert len(rows) == 1


def test_quiz_answers_outside_options_are_rejected_and_nothing_is_saved(run_db, world, principals):
    answers = {str(world["quiz_mc"]): "Z", str(world["quiz_tf"]): "true", str(world["quiz_text"]): "Paris"}
    with pytest.raises(ValidationError):
        run_db(lambda db: quizzes.submit_answers(db, principals["student"], world["lesson"], answers))

    async def attempts(db):
        return (await db.execute(models.QuizAttempt.__table__.select())).all()

    assert run_db(attempts) == []


def test_unenrolled_student_cannot_submit_quiz(run_db, world, principals):
    with pytest.raises(AuthorizationDenied) as excinfo:
        run_db(lambda db: quizzes.submit_answers(db, principals["outsider"], world["lesson"], {}))
    assert excinfo.value.reason is DenyReason.NOT_ENROLLED


def test_lesson_without_quizzes_is_not_found(run_db, world, principals):
    with pytest.raises(NotFoundError):
        run_db(lambda db: quizzes.submit_answers(db, principals["admin"], world["draft_lesson"], {}))


def test_student_quiz_view_hides_answers(run_db, world, principals):
    student_view = run_db(lambda db: quizzes.list_quizzes(db, principals["student"], world["lesson"]))
    owner_view = run_db(lambda db: quizzes.list_quizzes(db, principals["owner"], world["lesson"]))
    assert all("correct_answer" not in quiz for quiz in student_view)
    assert all("correct_answer" in quiz for quiz in owner_view)


def test_unpublished_lesson_is_invisible_to_students(run_db, world, principals):
    with pytest.raises(NotFoundError):
        run_db(lambda db: courses.get_lesson(db, principals["student"], world["draft_lesson"]))
    lesson = run_db(lambda db: courses.get_lesson(db, principals["owner"], world["draft_lesson"]))
    assert lesson["title"] == "Draft"


def test_bulk_quiz_creation_is_all_or_nothing(run_db, world, principals):
    definitions = [
        {"question": "Good", "correct_answer": "a"},
        {"question": "Bad", "correct_answer": "D", "quiz_type": "multiple_choice", "options": ["A", "B"]},
    ]
    with pytest.raises(ValidationError):
        run_db(lambda db: quizzes.bulk_create_quizzes(db, principals["owner"], world["draft_lesson"], definitions))
    created = run_db(
        lambda db: quizzes.bulk_create_quizzes(db, principals["owner"], world["draft_lesson"], definitions[:1])
    )
    assert len(created) == 1


# Structure

def test_module_lesson_listing_requires_enrollment(run_db, world, principals):
    with pytest.raises(AuthorizationDenied) as excinfo:
        run_db(lambda db: courses.list_lessons(db, principals["outsider"], world["module"]))
    assert excinfo.value.reason is DenyReason.NOT_ENROLLED

    student_view = run_db(lambda db: courses.list_lessons(db, principals["student"], world["module"]))
    assert [lesson["title"] for lesson in student_view] == ["Variables"]
    owner_view = run_db(lambda db: courses.list_lessons(db, principals["owner"], world["module"]))
    assert [lesson["title"] for lesson in owner_view] == ["Variables", "Draft"]


def test_other_instructor_cannot_add_module(run_db, world, principals):
    with pytest.raises(AuthorizationDenied) as excinfo:
        run_db(lambda db: courses.create_module(db, principals["other_instructor"], world["course"], {"title": "X"}))
    assert excinfo.value.reason is DenyReason.NOT_OWNER


def test_new_modules_are_appended(run_db, world, principals):
    module = run_db(lambda db: courses.create_module(db, principals["owner"], world["course"], {"title": "Next"}))
    assert module["position"] == 2


def test_reorder_rejects_foreign_ids(run_db, world, principals):
    items = [{"id": world["module"], "position": 2}, {"id": world["other_module"], "position": 1}]
    with pytest.raises(ValidationError) as excinfo:
        run_db(lambda db: courses.reorder_modules(db, principals["owner"], world["course"], items))
    assert excinfo.value.issues == [f"Module {world['other_module']} does not belong to this parent"]


def test_soft_deleted_course_is_gone(run_db, world, principals):
    run_db(lambda db: courses.delete_course(db, principals["owner"], world["course"]))
    with pytest.raises(NotFoundError):
        run_db(lambda db: courses.get_course(db, principals["admin"], world["course"]))
    with pytest.raises(NotFoundError):
        run_db(lambda db: courses.update_module(db, principals["owner"], world["module"], {"title": "x"}))


# Submissions and grading

def test_duplicate_submission_conflicts_even_after_grading(run_db, world, principals):
    first = run_db(lambda db: assignments.submit(db, principals["student"], world["assignment_open"], "v1"))
    assert first["is_late"] is False
    run_db(lambda db: assignments.grade_submission(db, principals["owner"], first["id"], 90))
    with pytest.raises(ConflictError):
        run_db(lambda db: assignments.submit(db, principals["student"], world["assignment_open"], "v2"))


def test_late_submission_gets_penalised(run_db, world, principals):
    submission = run_db(lambda db: assignments.submit(db, principals["student"], world["assignment_late"], "late"))
    assert submission["is_late"] is True

    graded = run_db(lambda db: assignments.grade_submission(db, principals["owner"], submission["id"], 50, "ok"))
    assert graded["original_grade"] == 50
    assert graded["final_grade"] == 40
    assert graded["late_penalty_applied"] is True
    assert graded["graded_by"] == world["owner"]
    assert graded["graded_at"] is not None


def test_closed_assignment_rejects_late_work(run_db, world, principals):
    with pytest.raises(ValidationError) as excinfo:
        run_db(lambda db: assignments.submit(db, principals["student"], world["assignment_closed"], "late"))
    assert excinfo.value.message == "Assignment submission deadline has passed"


def test_submission_needs_content_or_file(run_db, world, principals):
    with pytest.raises(ValidationError):
        run_db(lambda db: assignments.submit(db, principals["student"], world["assignment_open"], None, None))


def test_graded_submission_is_frozen_for_the_student(run_db, world, principals):
    submission = run_db(lambda db: assignments.submit(db, principals["student"], world["assignment_open"], "v1"))
    run_db(lambda db: assignments.grade_submission(db, principals["owner"], submission["id"], 70))
    with pytest.raises(ValidationError):
        run_db(lambda db: assignments.update_submission(db, principals["student"], submission["id"], "v2"))
    with pytest.raises(ValidationError):
        run_db(lambda db: assignments.delete_submission(db, principals["student"], submission["id"]))


def test_update_after_due_date_latches_late(run_db, world, principals):
    submission = run_db(lambda db: assignments.submit(db, principals["student"], world["assignment_open"], "v1"))
    later = utcnow() + timedelta(days=30)
    updated = run_db(
        lambda db: assignments.update_submission(db, principals["student"], submission["id"], "v2", now=later)
    )
    assert updated["is_late"] is True
    assert updated["content"] == "v2"


def test_other_student_cannot_touch_submission(run_db, world, principals):
    submission = run_db(lambda db: assignments.submit(db, principals["student"], world["assignment_open"], "v1"))
    with pytest.raises(AuthorizationDenied) as excinfo:
        run_db(lambda db: assignments.get_submission(db, principals["outsider"], submission["id"]))
    assert excinfo.value.reason is DenyReason.NOT_RESOURCE_OWNER


def test_student_lists_only_their_own_submissions(run_db, world, principals):
    run_db(lambda db: assignments.submit(db, principals["student"], world["assignment_open"], "mine"))
    run_db(lambda db: assignments.submit(db, principals["student"], world["assignment_late"], "also mine"))

    mine = run_db(lambda db: assignments.my_submissions(db, principals["student"]))
    assert sorted(entry["assignment_title"] for entry in mine) == ["Open", "Past due"]
    assert all(entry["course_title"] == "Intro to Python" for entry in mine)
    assert run_db(lambda db: assignments.my_submissions(db, principals["outsider"])) == []
    assert run_db(lambda db: assignments.my_submissions(db, principals["student"], course_id=world["other_course"])) == []

    run_db(lambda db: courses.delete_course(db, principals["owner"], world["course"]))
    assert run_db(lambda db: assignments.my_submissions(db, principals["student"])) == []


def test_bulk_grade_keeps_successful_items(run_db, world, principals):
    submission = run_db(lambda db: assignments.submit(db, principals["student"], world["assignment_late"], "late"))
    entries = [
        {"submission_id": submission["id"], "grade": 80, "feedback": None},
        {"submission_id": 9999, "grade": 50, "feedback": None},
    ]
    result = run_db(lambda db: assignments.bulk_grade(db, principals["owner"], world["assignment_late"], entries))
    assert result["summary"] == {"total": 2, "succeeded": 1, "failed": 1}
    assert result["results"][0]["result"]["final_grade"] == 64
    assert result["results"][1]["error"] == "Submission not found in this assignment"

    stored = run_db(lambda db: assignments.get_submission(db, principals["student"], submission["id"]))
    assert stored["grade"] == 64
    assert stored["raw_grade"] == 80


def test_bulk_grade_out_of_range_is_per_item(run_db, world, principals):
    submission = run_db(lambda db: assignments.submit(db, principals["student"], world["assignment_open"], "x"))
    entries = [{"submission_id": submission["id"], "grade": 150, "feedback": None}]
    result = run_db(lambda db: assignments.bulk_grade(db, principals["owner"], world["assignment_open"], entries))
    assert result["results"][0] == {"key": submission["id"], "success": False, "error": "grade out of range"}


def test_submission_stats(run_db, world, principals):
    submission = run_db(lambda db: assignments.submit(db, principals["student"], world["assignment_open"], "x"))
    run_db(lambda db: assignments.grade_submission(db, principals["owner"], submission["id"], 85))
    stats = run_db(lambda db: assignments.submission_stats(db, principals["owner"], world["assignment_open"]))
    assert stats["total_submissions"] == 1
    assert stats["grade_distribution"]["B"] == 1
    assert stats["grading_progress"] == 100


def test_assignment_titles_are_unique_per_lesson(run_db, world, principals):
    with pytest.raises(ConflictError):
        run_db(lambda db: assignments.create_assignment(db, principals["owner"], world["lesson"], {"title": "open"}))


# Enrollments

def test_progress_completion_round_trip(run_db, world, principals):
    done = run_db(lambda db: enrollments.set_progress(db, principals["student"], world["course"], 100))
    assert done["completed"] is True
    assert done["completed_at"] is not None

    back = run_db(lambda db: enrollments.set_progress(db, principals["student"], world["course"], 50))
    assert back["completed"] is False
    assert back["completed_at"] is None


def test_progress_requires_an_enrollment(run_db, world, principals):
    with pytest.raises(NotFoundError):
        run_db(lambda db: enrollments.set_progress(db, principals["outsider"], world["course"], 10))


def test_enroll_twice_conflicts(run_db, world, principals):
    run_db(lambda db: enrollments.enroll(db, principals["outsider"], world["course"]))
    with pytest.raises(ConflictError):
        run_db(lambda db: enrollments.enroll(db, principals["outsider"], world["course"]))


def test_enroll_requires_published_course(run_db, world, principals):
    run_db(lambda db: courses.toggle_course_publish(db, principals["owner"], world["course"]))
    with pytest.raises(ValidationError):
        run_db(lambda db: enrollments.enroll(db, principals["outsider"], world["course"]))


def test_bulk_enroll_reports_per_user(run_db, world, principals):
    user_ids = [world["outsider"], world["student"], 9999]
    result = run_db(lambda db: enrollments.bulk_enroll(db, principals["owner"], world["course"], user_ids))
    assert [item["success"] for item in result["results"]] == [True, False, False]
    assert result["results"][1]["error"] == "Already enrolled in this course"

    stats = run_db(lambda db: enrollments.course_enrollment_stats(db, principals["owner"], world["course"]))
    assert stats["total_enrollments"] == 2


def test_progress_for_another_user_is_denied_before_lookup(run_db, world, principals):
    with pytest.raises(AuthorizationDenied) as excinfo:
        run_db(
            lambda db: enrollments.set_progress(
                db, principals["student"], world["course"], 10, user_id=world["outsider"]
            )
        )
    assert excinfo.value.reason is DenyReason.NOT_RESOURCE_OWNER

    updated = run_db(
        lambda db: enrollments.set_progress(db, principals["admin"], world["course"], 40, user_id=world["student"])
    )
    assert updated["progress"] == 40


def test_completed_at_can_survive_regression(run_db, world, principals, monkeypatch):
    monkeypatch.setattr(enrollments, "get_settings", lambda: Settings(clear_completed_at=False))
    done = run_db(lambda db: enrollments.set_progress(db, principals["student"], world["course"], 100))
    back = run_db(lambda db: enrollments.set_progress(db, principals["student"], world["course"], 60))
    assert back["completed"] is False
    assert back["completed_at"][:19] == done["completed_at"][:19]


def test_course_roster_filters_on_completion(run_db, world, principals):
    run_db(lambda db: enrollments.enroll(db, principals["outsider"], world["course"]))
    run_db(lambda db: enrollments.set_progress(db, principals["student"], world["course"], 100))

    roster = run_db(lambda db: enrollments.course_roster(db, principals["owner"], world["course"]))
    assert roster["total"] == 2
    finished = run_db(lambda db: enrollments.course_roster(db, principals["owner"], world["course"], completed=True))
    assert [entry["email"] for entry in finished["enrollments"]] == ["student@example.com"]

    with pytest.raises(AuthorizationDenied):
        run_db(lambda db: enrollments.course_roster(db, principals["other_instructor"], world["course"]))


def test_enrollment_status_reports_the_caller(run_db, world, principals):
    enrolled = run_db(lambda db: enrollments.enrollment_status(db, principals["student"], world["course"]))
    assert enrolled["is_enrolled"] is True
    assert enrolled["enrollment"]["course_id"] == world["course"]

    outside = run_db(lambda db: enrollments.enrollment_status(db, principals["outsider"], world["course"]))
    assert outside == {"course_id": world["course"], "user_id": world["outsider"], "is_enrolled": False, "enrollment": None}


# Categories and users

def test_category_delete_blocked_by_active_courses(run_db, world, principals):
    with pytest.raises(ConflictError):
        run_db(lambda db: categories.delete_category(db, principals["admin"], world["category"]))

    run_db(lambda db: courses.delete_course(db, principals["owner"], world["course"]))
    run_db(lambda db: categories.delete_category(db, principals["admin"], world["category"]))
    with pytest.raises(NotFoundError):
        run_db(lambda db: categories.get_category(db, world["category"]))


def test_category_names_are_case_insensitive(run_db, world, principals):
    with pytest.raises(ConflictError):
        run_db(lambda db: categories.create_category(db, principals["admin"], {"name": "programming"}))


def test_only_admins_manage_categories(run_db, world, principals):
    with pytest.raises(AuthorizationDenied):
        run_db(lambda db: categories.create_category(db, principals["owner"], {"name": "Art"}))


def test_merge_moves_courses_into_target(run_db, world, principals):
    target = run_db(lambda db: categories.create_category(db, principals["admin"], {"name": "Software"}))
    result = run_db(
        lambda db: categories.merge_categories(db, principals["admin"], [world["category"], target["id"]], target["id"])
    )
    assert result["moved_courses"] == 1
    assert result["summary"]["succeeded"] == 1
    course = run_db(lambda db: courses.get_course(db, principals["owner"], world["course"]))
    assert course["category_id"] == target["id"]


def test_bulk_delete_is_partial(run_db, world, principals):
    spare = run_db(lambda db: categories.create_category(db, principals["admin"], {"name": "Spare"}))
    result = run_db(
        lambda db: categories.bulk_delete_categories(db, principals["admin"], [spare["id"], world["category"]])
    )
    assert [item["success"] for item in result["results"]] == [True, False]


def test_admin_changes_roles_but_not_their_own(run_db, world, principals):
    updated = run_db(lambda db: users.change_role(db, principals["admin"], world["outsider"], "Instructor"))
    assert updated["role"] == "instructor"
    with pytest.raises(ValidationError):
        run_db(lambda db: users.change_role(db, principals["admin"], world["admin"], "student"))
    with pytest.raises(ValidationError):
        run_db(lambda db: users.change_role(db, principals["admin"], world["outsider"], "wizard"))


def test_deleted_user_disappears_and_cannot_delete_self(run_db, world, principals):
    with pytest.raises(AuthorizationDenied):
        run_db(lambda db: users.delete_user(db, principals["owner"], world["outsider"]))
    with pytest.raises(ValidationError):
        run_db(lambda db: users.delete_user(db, principals["admin"], world["admin"]))

    run_db(lambda db: users.delete_user(db, principals["admin"], world["outsider"]))
    listed = run_db(lambda db: users.list_users(db, principals["admin"]))
    assert world["outsider"] not in [user["id"] for user in listed]
    with pytest.raises(NotFoundError):
        run_db(lambda db: users.get_profile(db, principals["admin"], world["outsider"]))
    with pytest.raises(NotFoundError):
        run_db(lambda db: users.delete_user(db, principals["admin"], world["outsider"]))
