"""Progress reporting for running pipeline jobs."""

import logging
from typing import Any

from sqlalchemy.orm import Session

from examrank.models.job import JobRun

logger = logging.getLogger(__name__)


class JobContext:
    """
    Handle passed to job handlers for reporting progress.

    Every update is committed immediately so the job row reflects liveness
    while the handler is still running.
    """

    def __init__(self, db: Session, job: JobRun):
        self.db = db
        self.job = job

    @property
    def exam_id(self) -> int | None:
        return self.job.exam_id

    @property
    def config(self) -> dict[str, Any]:
        return dict(self.job.job_metadata or {})

    def _update_metadata(self, **changes: Any) -> None:
        # Reassign so the JSON column is flagged dirty
        self.job.job_metadata = {**(self.job.job_metadata or {}), **changes}

    def set_total(self, total: int) -> None:
        self.job.total_records = total
        self.db.commit()

    def increment_processed(self, count: int = 1) -> None:
        self.job.records_processed = (self.job.records_processed or 0) + count
        self.db.commit()

    def update_progress(self, percent: int, message: str | None = None) -> None:
        self.job.progress_percent = max(0, min(100, int(percent)))
        if message is not None:
            result = dict((self.job.job_metadata or {}).get("result") or {})
            result["message"] = message
            self._update_metadata(result=result)
            logger.debug(f"Job {self.job.id}: {self.job.progress_percent}% {message}")
        self.db.commit()

    def add_warning(self, warning: str) -> None:
        warnings = list((self.job.job_metadata or {}).get("warnings") or [])
        warnings.append(warning)
        self._update_metadata(warnings=warnings)
        self.db.commit()
        logger.warning(f"Job {self.job.id}: {warning}")


def exam_progress(index: int, exam_count: int, step: int = 0, steps: int = 1) -> int:
    """
    Progress percentage for sub-step ``step`` of exam ``index``.

    Exams share the 5-95% band evenly; 0-5% covers counting and 100% is
    reserved for completion.
    """
    if exam_count <= 0:
        return 95
    fraction = (index + step / steps) / exam_count
    return min(95, 5 + int(fraction * 90))
