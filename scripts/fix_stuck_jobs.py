"""Mark long-running jobs as failed so new jobs can be queued."""

import argparse

from dotenv import load_dotenv

load_dotenv()

from examrank.core.config import settings  # noqa: E402
from examrank.core.database import SessionLocal  # noqa: E402
from examrank.services.job import JobService  # noqa: E402


def main() -> None:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument(
        "--apply",
        action="store_true",
        help="Mark the jobs as failed (default only lists them)",
    )
    args = parser.parse_args()

    db = SessionLocal()
    try:
        jobs = JobService(db).fail_stuck_jobs(dry_run=not args.apply)
    finally:
        db.close()

    if not jobs:
        print(f"No jobs running for more than {settings.STUCK_JOB_MINUTES} minutes")
        return

    action = "Marked as failed" if args.apply else "Would mark as failed"
    for job in jobs:
        print(f"{action}: job {job.id} {job.job_name} (started {job.started_at})")
    if not args.apply:
        print("Re-run with --apply to update them")


if __name__ == "__main__":
    main()
