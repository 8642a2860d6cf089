"""Create and run a pipeline job from the command line."""

import argparse
import logging
import sys

from dotenv import load_dotenv

load_dotenv()

from examrank.core.database import SessionLocal  # noqa: E402
from examrank.core.exceptions import AppException  # noqa: E402
from examrank.models.job import JobStatus, JobType  # noqa: E402
from examrank.schemas.job import JobCreate  # noqa: E402
from examrank.services.job import JobService  # noqa: E402


def main() -> int:
    parser = argparse.ArgumentParser(description="Run a normalization pipeline job synchronously.")
    parser.add_argument(
        "job_type",
        choices=[job_type.value for job_type in JobType],
        help="Pipeline stage to run",
    )
    parser.add_argument("--exam-id", type=int, default=None, help="Target exam (default: all active exams)")
    args = parser.parse_args()

    logging.basicConfig(level=logging.INFO, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s")

    db = SessionLocal()
    try:
        service = JobService(db)
        job = service.create_job(
            JobCreate(job_type=JobType(args.job_type), exam_id=args.exam_id),
            triggered_by="cli",
        )
        db.commit()
        job = service.run_job(job.id)
    except AppException as e:
        print(f"Error: {e.message}", file=sys.stderr)
        return 1
    finally:
        db.close()

    result = (job.job_metadata or {}).get("result") or {}
    print(f"Job {job.id} {job.status.value}: {result.get('message') or job.error_message}")
    for warning in (job.job_metadata or {}).get("warnings") or []:
        print(f"  warning: {warning}")
    return 0 if job.status == JobStatus.SUCCESS else 1


if __name__ == "__main__":
    sys.exit(main())
