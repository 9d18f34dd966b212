import logging
from typing import Dict

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from starlette.middleware.sessions import SessionMiddleware

from lms_service.config import get_settings
from lms_service.errors import AuthorizationDenied, ConflictError, LMSError, NotFoundError, ValidationError

settings = get_settings()
logging.basicConfig(level=settings.log_level)
logger = logging.getLogger(__name__)

STATUS_BY_ERROR = {
    NotFoundError: 404,
    ValidationError: 400,
    AuthorizationDenied: 403,
    ConflictError: 409,
}


app = FastAPI(
    title="LMS Service",
    description="Course, grading and enrollment rules for a learning management system.",
    version="0.1.0",
)
app.add_middleware(
    SessionMiddleware,
    secret_key=settings.secret_key,
)


def _error_handler(status_code: int):
    async def handler(request: Request, exc: LMSError) -> JSONResponse:
        logger.debug("%s %s -> %s: %s", request.method, request.url.path, status_code, exc.message)
        return JSONResponse(status_code=status_code, content=exc.to_dict())

    return handler


for error_cls, status_code in STATUS_BY_ERROR.items():
    app.add_exception_handler(error_cls, _error_handler(status_code))


from lms_service.admin import router as admin_router
from routes.assignments import router as assignments_router
from routes.categories import router as categories_router
from routes.courses import module_router, router as courses_router
from routes.enrollments import router as enrollments_router
from routes.lessons import router as lessons_router
from routes.quizzes import router as quizzes_router
from routes.users import router as users_router

app.include_router(courses_router)
app.include_router(module_router)
app.include_router(lessons_router)
app.include_router(quizzes_router)
app.include_router(assignments_router)
app.include_router(enrollments_router)
app.include_router(categories_router)
app.include_router(users_router)
app.include_router(admin_router)

from lms_service.database import init_db
from lms_service.authorization import get_policy_engine


@app.on_event("startup")
async def on_startup():
    # Fails fast on unknown names in ENROLLMENT_GATED_ACTIONS.
    engine = get_policy_engine()
    logger.info("Enrollment gating enabled for: %s", sorted(action.value for action in engine.gated_actions))
    await init_db()


@app.get("/health", tags=["system"])
def health_check() -> Dict[str, str]:
    return {"status": "ok"}
