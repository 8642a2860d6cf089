"""Submission re-evaluation endpoints."""

from typing import Annotated

from fastapi import APIRouter, Body, Depends
from sqlalchemy.orm import Session

from examrank.core.database import get_db
from examrank.core.exceptions import NotFoundError
from examrank.models.submission import Submission
from examrank.schemas.normalization import IncrementalResultResponse, ReevaluateRequest
from examrank.services.incremental import IncrementalService

router = APIRouter()


@router.post("/{submission_id}/reevaluate", response_model=IncrementalResultResponse)
def reevaluate_submission(
    submission_id: int,
    db: Annotated[Session, Depends(get_db)],
    request: Annotated[ReevaluateRequest | None, Body()] = None,
):
    """
    Incremental re-evaluation after a submission is stored or rescored.
    Normalizes the submission against cached shift statistics, re-ranks the
    exam and refreshes cutoffs when enough new submissions have accumulated.
    """
    submission = db.get(Submission, submission_id)
    if not submission:
        raise NotFoundError("Submission", str(submission_id))

    if request and request.raw_score is not None:
        submission.raw_score = request.raw_score
        db.commit()

    service = IncrementalService(db)
    return service.handle_post_submission(
        submission.id,
        submission.exam_id,
        submission.shift_id,
        submission.raw_score,
    )
