"""
Pipeline job handlers.

Each handler receives a ``JobContext``, resolves its target exams (one exam
from the job metadata, or every active exam), and returns a result message.
Configuration and insufficient-data problems for one exam are recorded as
warnings and the loop moves on; anything else propagates and fails the job.
"""

import logging
from collections.abc import Callable

from sqlalchemy import func, select

from examrank.core.exceptions import PipelineError
from examrank.models.exam import Exam
from examrank.models.job import JobType
from examrank.models.submission import Submission
from examrank.services.cutoff import SOURCE_BATCH, CutoffPredictor
from examrank.services.exam import ExamService
from examrank.services.job_context import JobContext, exam_progress
from examrank.services.normalization import NormalizationService
from examrank.services.ranking import RankingService

logger = logging.getLogger(__name__)

JobHandler = Callable[[JobContext], str]

# Warn when ranking an exam with more than this share un-normalized
UNNORMALIZED_WARNING_RATIO = 0.1


def _resolve_exams(ctx: JobContext) -> list[Exam]:
    exam_id = ctx.exam_id
    if exam_id is not None:
        exam = ctx.db.get(Exam, exam_id)
        if not exam:
            raise PipelineError(f"Exam {exam_id} not found", exam_id)
        return [exam]
    return ExamService(ctx.db).list_active_exams()


def _submission_counts(ctx: JobContext, exams: list[Exam]) -> dict[int, int]:
    if not exams:
        return {}
    rows = ctx.db.execute(
        select(Submission.exam_id, func.count(Submission.id))
        .where(Submission.exam_id.in_([exam.id for exam in exams]))
        .group_by(Submission.exam_id)
    ).all()
    counts = {exam.id: 0 for exam in exams}
    counts.update({exam_id: count for exam_id, count in rows})
    return counts


def _start(ctx: JobContext, verb: str) -> tuple[list[Exam], dict[int, int]]:
    exams = _resolve_exams(ctx)
    counts = _submission_counts(ctx, exams)
    ctx.set_total(sum(counts.values()))
    ctx.update_progress(5, f"{verb} {len(exams)} exam(s), {sum(counts.values())} submissions")
    return exams, counts


def _skip(ctx: JobContext, exam: Exam, error: PipelineError) -> None:
    ctx.db.rollback()
    ctx.add_warning(f"Exam {exam.id}: {error.message}")


def run_normalization(ctx: JobContext) -> str:
    """Full normalization for the target exams."""
    exams, counts = _start(ctx, "Normalizing")
    normalized = 0

    for index, exam in enumerate(exams):
        ctx.update_progress(exam_progress(index, len(exams)), f"Normalizing exam {exam.id}...")
        try:
            result = NormalizationService(ctx.db).normalize_exam(exam, on_batch=ctx.increment_processed)
            normalized += result.processed
        except PipelineError as e:
            _skip(ctx, exam, e)
            # Skipped exams still count towards the processed total
            ctx.increment_processed(counts[exam.id])

    return f"Normalized {normalized} submissions across {len(exams)} exam(s)"


def _rank_exam(ctx: JobContext, exam: Exam) -> int:
    ranking = RankingService(ctx.db)
    total, unnormalized = ranking.count_unnormalized(exam.id)
    if total and unnormalized / total > UNNORMALIZED_WARNING_RATIO:
        ctx.add_warning(
            f"Exam {exam.id}: {unnormalized} of {total} submissions are not normalized; "
            "run normalization first"
        )
    return ranking.recalculate_ranks(exam.id)


def run_rank_calculation(ctx: JobContext) -> str:
    """Recompute ranks and percentiles for the target exams."""
    exams, _ = _start(ctx, "Ranking")
    ranked = 0

    for index, exam in enumerate(exams):
        ctx.update_progress(exam_progress(index, len(exams)), f"Ranking exam {exam.id}...")
        count = _rank_exam(ctx, exam)
        ranked += count
        ctx.increment_processed(count)

    return f"Ranked {ranked} submissions across {len(exams)} exam(s)"


def run_cutoff_prediction(ctx: JobContext) -> str:
    """Predict category cutoffs for the target exams."""
    exams, counts = _start(ctx, "Predicting cutoffs for")
    predicted = 0

    for index, exam in enumerate(exams):
        ctx.update_progress(exam_progress(index, len(exams)), f"Predicting cutoffs for exam {exam.id}...")
        result = CutoffPredictor(ctx.db).predict_exam(exam, source=SOURCE_BATCH)
        if result.skipped:
            ctx.add_warning(f"Exam {exam.id}: {result.skipped_reason}")
        else:
            predicted += len(result.predictions)
        ctx.increment_processed(counts[exam.id])

    return f"Predicted {predicted} category cutoffs across {len(exams)} exam(s)"


def run_batch_processing(ctx: JobContext) -> str:
    """Normalize, rank and predict cutoffs exam by exam."""
    exams, counts = _start(ctx, "Processing")

    for index, exam in enumerate(exams):
        ctx.update_progress(exam_progress(index, len(exams), 0, 3), f"Exam {exam.id}: normalizing...")
        try:
            NormalizationService(ctx.db).normalize_exam(exam)
        except PipelineError as e:
            _skip(ctx, exam, e)

        ctx.update_progress(exam_progress(index, len(exams), 1, 3), f"Exam {exam.id}: ranking...")
        _rank_exam(ctx, exam)

        ctx.update_progress(exam_progress(index, len(exams), 2, 3), f"Exam {exam.id}: predicting cutoffs...")
        result = CutoffPredictor(ctx.db).predict_exam(exam, source=SOURCE_BATCH)
        if result.skipped:
            ctx.add_warning(f"Exam {exam.id}: {result.skipped_reason}")

        ctx.increment_processed(counts[exam.id])

    return f"Processed {len(exams)} exam(s), {sum(counts.values())} submissions"


JOB_HANDLERS: dict[JobType, JobHandler] = {
    JobType.NORMALIZATION: run_normalization,
    JobType.RANK_CALCULATION: run_rank_calculation,
    JobType.CUTOFF_PREDICTION: run_cutoff_prediction,
    JobType.BATCH_PROCESSING: run_batch_processing,
}
