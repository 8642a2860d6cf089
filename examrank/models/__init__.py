"""Database models package."""

from examrank.models.cutoff import PREDICTION_POST_CODE, ConfidenceLevel, Cutoff
from examrank.models.exam import Exam, NormalizationMethod
from examrank.models.job import ACTIVE_JOB_STATUSES, JobRun, JobStatus, JobType, ScheduledJob
from examrank.models.shift import DifficultyLabel, Shift
from examrank.models.submission import Submission

__all__ = [
    # Exam
    "Exam",
    "NormalizationMethod",
    # Shift
    "Shift",
    "DifficultyLabel",
    # Submission
    "Submission",
    # Cutoff
    "Cutoff",
    "ConfidenceLevel",
    "PREDICTION_POST_CODE",
    # Jobs
    "JobRun",
    "JobStatus",
    "JobType",
    "ACTIVE_JOB_STATUSES",
    "ScheduledJob",
]
