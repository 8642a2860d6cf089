"""
Shared test fixtures.

Points the application at an in-memory SQLite database before any
``examrank`` module is imported, recreates the schema for every test and
provides small factories for exams, shifts and submissions.
"""

import itertools
import os

os.environ["DATABASE_URL"] = "sqlite://"
os.environ["SCHEDULER_ENABLED"] = "false"

import pytest  # noqa: E402

from examrank import models  # noqa: E402,F401
from examrank.core.database import Base, SessionLocal, engine  # noqa: E402
from examrank.models import Exam, NormalizationMethod, Shift, Submission  # noqa: E402

_sequence = itertools.count(1)


@pytest.fixture
def db():
    """Fresh schema and session per test."""
    Base.metadata.create_all(bind=engine)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def make_exam(db):
    def _make_exam(**overrides) -> Exam:
        number = next(_sequence)
        values = {
            "name": f"Combined Graduate Level {number}",
            "slug": f"cgl-{number}",
            "agency": "SSC",
            "year": 2024,
            "tier": "Tier 1",
            "total_marks": 200.0,
            "total_questions": 100,
            "has_normalization": True,
            "normalization_method": NormalizationMethod.Z_SCORE,
        }
        values.update(overrides)
        exam = Exam(**values)
        db.add(exam)
        db.commit()
        return exam

    return _make_exam


@pytest.fixture
def make_shift(db):
    def _make_shift(exam: Exam, shift_number: int = 1, **overrides) -> Shift:
        values = {
            "exam_id": exam.id,
            "shift_code": f"{exam.slug}-s{shift_number}-{next(_sequence)}",
            "date": "2024-09-10",
            "shift_number": shift_number,
            "time_slot": "09:00-10:00",
        }
        values.update(overrides)
        shift = Shift(**values)
        db.add(shift)
        db.commit()
        return shift

    return _make_shift


@pytest.fixture
def make_submission(db):
    def _make_submission(exam: Exam, shift: Shift, raw_score: float, **overrides) -> Submission:
        number = next(_sequence)
        values = {
            "exam_id": exam.id,
            "shift_id": shift.id,
            "roll_number": f"R{number:07d}",
            "name": f"Candidate {number}",
            "dob": "2000-01-01",
            "category": "UR",
            "gender": "M",
            "state": "Delhi",
            "raw_score": raw_score,
        }
        values.update(overrides)
        submission = Submission(**values)
        db.add(submission)
        db.commit()
        return submission

    return _make_submission


@pytest.fixture
def add_scores(db):
    """Insert one submission per raw score into a shift."""

    def _add_scores(exam: Exam, shift: Shift, scores, **overrides) -> list[Submission]:
        submissions = []
        for raw_score in scores:
            number = next(_sequence)
            values = {
                "exam_id": exam.id,
                "shift_id": shift.id,
                "roll_number": f"R{number:07d}",
                "name": f"Candidate {number}",
                "dob": "2000-01-01",
                "category": "UR",
                "gender": "F",
                "state": "Bihar",
                "raw_score": float(raw_score),
            }
            values.update(overrides)
            submissions.append(Submission(**values))
        db.add_all(submissions)
        db.commit()
        return submissions

    return _add_scores
