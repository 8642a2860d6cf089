"""Main API router aggregating all module routers."""

from fastapi import APIRouter

from examrank.api.v1.endpoints import (
    exams,
    jobs,
    normalization,
    scheduled_jobs,
    submissions,
)

api_router = APIRouter()

# Pipeline jobs
api_router.include_router(
    jobs.router,
    prefix="/jobs",
    tags=["Jobs"],
)

# Cron schedules for pipeline jobs
api_router.include_router(
    scheduled_jobs.router,
    prefix="/scheduled-jobs",
    tags=["Scheduled Jobs"],
)

# Exam readiness, shift statistics and cutoffs
api_router.include_router(
    exams.router,
    prefix="/exams",
    tags=["Exams"],
)

# Normalization methods and re-normalization status
api_router.include_router(
    normalization.router,
    prefix="/normalization",
    tags=["Normalization"],
)

# Incremental re-evaluation
api_router.include_router(
    submissions.router,
    prefix="/submissions",
    tags=["Submissions"],
)
