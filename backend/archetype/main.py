"""
Archetype Assessments API.

Wires the FastAPI application together: JSON logging, CORS, per-request ids,
translation of service errors into HTTP responses, and the routers for
tests, attempts, skills and notifications. ``run()`` is the console entry
point.
"""

import time

import uvicorn
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from archetype import config
from archetype.database import DATABASE_URL, create_tables
from archetype.errors import AssessmentError
from archetype.logging_config import (
    generate_request_id, get_logger, log_with_context, request_id_var, setup_logging
)
from archetype.routes import attempts, notifications, skills, tests

setup_logging()
logger = get_logger("http")

# PostgreSQL schemas are managed by Alembic
if DATABASE_URL.startswith("sqlite"):
    create_tables()

app = FastAPI(
    title="Archetype Assessments",
    description=(
        "Assessment lifecycle for the learning platform: test definitions, "
        "attempt admission, auto and manual grading, and skill levels."
    ),
    version=config.APP_VERSION,
    docs_url="/docs",
    redoc_url="/redoc",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=config.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=["X-Request-ID"],
)


@app.middleware("http")
async def request_id_middleware(request: Request, call_next):
    """Tag the request with an id (log context + X-Request-ID) and log its latency."""
    req_id = request.headers.get("x-request-id") or generate_request_id()
    token = request_id_var.set(req_id)
    started = time.perf_counter()
    route = "{} {}".format(request.method, request.url.path)

    log_with_context(logger, "DEBUG", "Request started: {}".format(route),
                     extra_data={
                         "ip": request.client.host if request.client else "unknown",
                         "user_id": request.headers.get("x-user-id", ""),
                     })
    try:
        response = await call_next(request)
        response.headers["X-Request-ID"] = req_id
        log_with_context(logger, "INFO",
                         "{} -> {}".format(route, response.status_code),
                         extra_data={
                             "duration_ms": round((time.perf_counter() - started) * 1000, 2),
                             "status_code": response.status_code,
                         })
        return response
    finally:
        request_id_var.reset(token)


@app.exception_handler(AssessmentError)
async def assessment_error_handler(request: Request, exc: AssessmentError):
    level = "ERROR" if exc.status_code >= 500 else "WARNING"
    log_with_context(logger, level,
                     "{} {} rejected: {}".format(request.method, request.url.path, exc.message),
                     extra_data={"error": exc.code, "status_code": exc.status_code})
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


app.include_router(tests.router, tags=["Tests"])
app.include_router(attempts.router, tags=["Attempts"])
app.include_router(skills.router, tags=["Skills"])
app.include_router(notifications.router, tags=["Notifications"])


@app.get("/health", tags=["Health"])
def health_check():
    return {"status": "healthy", "service": config.APP_NAME, "version": config.APP_VERSION}


@app.get("/", tags=["Root"])
def root():
    """Service summary with the main endpoints."""
    return {
        "service": "Archetype Assessments",
        "version": config.APP_VERSION,
        "docs": "/docs",
        "health": "/health",
        "endpoints": {
            "create_test": "POST /api/tests",
            "available_tests": "GET /api/tests/available",
            "test_detail": "GET /api/tests/{id}",
            "start": "POST /api/tests/{id}/start",
            "submit": "POST /api/tests/{id}/submit",
            "results": "GET /api/attempts/results",
            "pending": "GET /api/attempts/pending",
            "grade": "POST /api/attempts/{id}/grade",
            "flag": "POST /api/attempts/{id}/flag",
            "skills": "GET /api/skills",
            "calculate_skills": "POST /api/skills/calculate/{user_id}",
            "notifications": "GET /api/notifications",
        },
    }


def run():
    uvicorn.run("archetype.main:app", host=config.HOST, port=config.PORT)
