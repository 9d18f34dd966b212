import pytest

from lms_service import models
from lms_service.errors import NotFoundError
from lms_service.hierarchy import EntityKind, resolve


def test_resolve_walks_up_to_the_course(run_db, world):
    chain = run_db(lambda db: resolve(db, EntityKind.QUIZ, world["quiz_mc"]))
    assert chain.course_id == world["course"]
    assert chain.course_instructor_id == world["owner"]
    assert chain.module_id == world["module"]
    assert chain.lesson_id == world["lesson"]
    assert chain.quiz_id == world["quiz_mc"]
    assert chain.is_course_deleted is False
    assert chain.is_published


def test_resolve_submission_exposes_its_author(run_db, world):
    async def scenario(db):
        submission = models.Submission(
            assignment_id=world["assignment_open"], student_id=world["student"], content="hi"
        )
        db.add(submission)
        await db.commit()
        return await resolve(db, EntityKind.SUBMISSION, submission.id)

    chain = run_db(scenario)
    assert chain.resource_owner_id == world["student"]
    assert chain.assignment_id == world["assignment_open"]
    assert chain.course_id == world["course"]


def test_unpublished_lesson_is_reported_on_the_chain(run_db, world):
    chain = run_db(lambda db: resolve(db, EntityKind.LESSON, world["draft_lesson"]))
    assert chain.is_lesson_published is False
    assert not chain.is_published


def test_missing_entity_is_not_found(run_db, world):
    with pytest.raises(NotFoundError) as excinfo:
        run_db(lambda db: resolve(db, EntityKind.LESSON, 9999))
    assert excinfo.value.message == "Lesson not found"


def test_soft_deleted_course_hides_the_subtree(run_db, world):
    async def scenario(db):
        course = await db.get(models.Course, world["course"])
        course.is_deleted = True
        await db.commit()

    run_db(scenario)
    for kind, key in [
        (EntityKind.COURSE, "course"),
        (EntityKind.MODULE, "module"),
        (EntityKind.LESSON, "lesson"),
        (EntityKind.QUIZ, "quiz_tf"),
        (EntityKind.ASSIGNMENT, "assignment_open"),
    ]:
        with pytest.raises(NotFoundError):
            run_db(lambda db: resolve(db, kind, world[key]))
