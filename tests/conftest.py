import asyncio
from datetime import timedelta

import pytest

from lms_service import database, models
from lms_service.identity import Principal, Role
from lms_service.timeutils import utcnow


@pytest.fixture
def temp_db(tmp_path):
    db_path = tmp_path / "test.db"
    database.configure_engine(f"sqlite+aiosqlite:///{db_path}")
    asyncio.run(database.init_db())
    yield str(db_path)
    asyncio.run(database.engine.dispose())


@pytest.fixture
def run_db(temp_db):
    """Run ``fn(session)`` to completion on a fresh session."""

    def runner(fn):
        async def _inner():
            async with database.AsyncSessionLocal() as db:
                return await fn(db)

        return asyncio.run(_inner())

    return runner


async def _seed(db):
    now = utcnow()
    users = {
        "admin": models.User(email="admin@example.com", full_name="Ada Admin", role="admin"),
        "owner": models.User(email="owner@example.com", full_name="Olive Owner", role="instructor"),
        "other_instructor": models.User(email="other@example.com", full_name="Omar Other", role="instructor"),
        "student": models.User(email="student@example.com", full_name="Sam Student", role="student"),
        "outsider": models.User(email="outsider@example.com", full_name="Otto Outsider", role="student"),
    }
    db.add_all(users.values())
    await db.flush()

    category = models.Category(name="Programming")
    db.add(category)
    await db.flush()

    course = models.Course(
        title="Intro to Python", instructor_id=users["owner"].id, category_id=category.id, is_published=True
    )
    other_course = models.Course(title="Other Course", instructor_id=users["other_instructor"].id, is_published=True)
    db.add_all([course, other_course])
    await db.flush()

    module = models.CourseModule(course_id=course.id, title="Basics", position=1, is_published=True)
    other_module = models.CourseModule(course_id=other_course.id, title="Elsewhere", position=1, is_published=True)
    db.add_all([module, other_module])
    await db.flush()

    lesson = models.Lesson(module_id=module.id, title="Variables", position=1, is_published=True)
    draft_lesson = models.Lesson(module_id=module.id, title="Draft", position=2, is_published=False)
    db.add_all([lesson, draft_lesson])
    await db.flush()

    quizzes = {
        "mc": models.Quiz(
            lesson_id=lesson.id, question="Which letter?", correct_answer="B",
            options=["A", "B", "C"], quiz_type="multiple_choice", points=2,
        ),
        "tf": models.Quiz(lesson_id=lesson.id, question="Python is dynamic?", correct_answer="true", quiz_type="true_false", points=1),
        "text": models.Quiz(lesson_id=lesson.id, question="Capital of France?", correct_answer="Paris", quiz_type="text", points=1),
    }
    db.add_all(quizzes.values())

    assignments = {
        "late": models.Assignment(
            lesson_id=lesson.id, title="Past due", due_date=now - timedelta(days=1),
            max_points=100, allow_late_submission=True, late_penalty_percent=20,
        ),
        "open": models.Assignment(
            lesson_id=lesson.id, title="Open", due_date=now + timedelta(days=7),
            max_points=100, allow_late_submission=True, late_penalty_percent=10,
        ),
        "closed": models.Assignment(
            lesson_id=lesson.id, title="Closed", due_date=now - timedelta(days=1),
            max_points=100, allow_late_submission=False, late_penalty_percent=10,
        ),
    }
    db.add_all(assignments.values())

    enrollment = models.Enrollment(user_id=users["student"].id, course_id=course.id, progress=0.0, completed=False)
    db.add(enrollment)
    await db.commit()

    ids = {name: user.id for name, user in users.items()}
    ids.update(
        category=category.id,
        course=course.id,
        other_course=other_course.id,
        module=module.id,
        other_module=other_module.id,
        lesson=lesson.id,
        draft_lesson=draft_lesson.id,
        quiz_mc=quizzes["mc"].id,
        quiz_tf=quizzes["tf"].id,
        quiz_text=quizzes["text"].id,
        assignment_late=assignments["late"].id,
        assignment_open=assignments["open"].id,
        assignment_closed=assignments["closed"].id,
    )
    return ids


@pytest.fixture
def world(run_db):
    return run_db(_seed)


@pytest.fixture
def principals(world):
    return {
        "admin": Principal(world["admin"], Role.ADMIN),
        "owner": Principal(world["owner"], Role.INSTRUCTOR),
        "other_instructor": Principal(world["other_instructor"], Role.INSTRUCTOR),
        "student": Principal(world["student"], Role.STUDENT),
        "outsider": Principal(world["outsider"], Role.STUDENT),
    }
