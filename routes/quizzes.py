from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from lms_service.database import get_db
from lms_service.dependencies import get_current_principal
from lms_service.identity import Principal
from lms_service.services import quizzes as quiz_service
from routes.envelope import ok
from schemas.quiz import QuizAnswers, QuizBulkCreate, QuizCreate, QuizUpdate

router = APIRouter(tags=["quizzes"])


@router.get("/api/lessons/{lesson_id}/quizzes")
async def list_quizzes(lesson_id: int, db: AsyncSession = Depends(get_db), principal: Principal = Depends(get_current_principal)):
    return ok(await quiz_service.list_quizzes(db, principal, lesson_id))


@router.post("/api/lessons/{lesson_id}/quizzes", status_code=201)
async def create_quiz(
    lesson_id: int,
    payload: QuizCreate,
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
):
    return ok(await quiz_service.create_quiz(db, principal, lesson_id, payload.model_dump()), "Quiz created")


@router.post("/api/lessons/{lesson_id}/quizzes/bulk", status_code=201)
async def bulk_create_quizzes(
    lesson_id: int,
    payload: QuizBulkCreate,
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
):
    quizzes = [quiz.model_dump() for quiz in payload.quizzes]
    created = await quiz_service.bulk_create_quizzes(db, principal, lesson_id, quizzes)
    return ok(created, f"{len(created)} quizzes created")


@router.post("/api/lessons/{lesson_id}/quizzes/submit")
async def submit_quiz_answers(
    lesson_id: int,
    payload: QuizAnswers,
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
):
    return ok(await quiz_service.submit_answers(db, principal, lesson_id, payload.answers), "Quiz submitted")


@router.get("/api/lessons/{lesson_id}/quizzes/stats")
async def quiz_stats(lesson_id: int, db: AsyncSession = Depends(get_db), principal: Principal = Depends(get_current_principal)):
    return ok(await quiz_service.quiz_stats(db, principal, lesson_id))


@router.put("/api/quizzes/{quiz_id}")
async def update_quiz(
    quiz_id: int,
    payload: QuizUpdate,
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
):
    data = payload.model_dump(exclude_unset=True)
    return ok(await quiz_service.update_quiz(db, principal, quiz_id, data), "Quiz updated")


@router.delete("/api/quizzes/{quiz_id}")
async def delete_quiz(quiz_id: int, db: AsyncSession = Depends(get_db), principal: Principal = Depends(get_current_principal)):
    await quiz_service.delete_quiz(db, principal, quiz_id)
    return ok(message="Quiz deleted")
