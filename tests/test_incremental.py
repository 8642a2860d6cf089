"""Tests for incremental re-evaluation and significance tracking."""

import pytest
from sqlalchemy import insert, select

from examrank.core.exceptions import NotFoundError, ValidationError
from examrank.models import Cutoff, JobRun, JobStatus, JobType, Submission
from examrank.models.base import utcnow
from examrank.services.incremental import (
    RECOMMEND_FULL,
    RECOMMEND_INCREMENTAL,
    RECOMMEND_INITIAL,
    IncrementalService,
)
from examrank.services.normalization import NormalizationService


def bulk_insert(db, exam, shift, count, start=0):
    db.execute(
        insert(Submission),
        [
            {
                "exam_id": exam.id,
                "shift_id": shift.id,
                "roll_number": f"B{exam.id}-{start + i:06d}",
                "name": f"Bulk Candidate {start + i}",
                "category": "UR",
                "gender": "M",
                "raw_score": float(50 + (start + i) % 100),
            }
            for i in range(count)
        ],
    )
    db.commit()


class TestSignificance:
    def test_threshold_boundary(self, db, make_exam, make_shift):
        exam = make_exam(subs_at_last_normalization=1000, re_norm_threshold=5.0)
        shift = make_shift(exam)
        service = IncrementalService(db)

        bulk_insert(db, exam, shift, 1049)
        below = service.check_significance(exam.id)
        assert below.new_count == 49
        assert below.percent_new == 4.9
        assert below.is_significant is False

        bulk_insert(db, exam, shift, 2, start=1049)
        above = service.check_significance(exam.id)
        assert above.total_count == 1051
        assert above.percent_new == 5.1
        assert above.is_significant is True

    def test_exactly_at_threshold_is_significant(self, db, make_exam, make_shift):
        exam = make_exam(subs_at_last_normalization=20, re_norm_threshold=5.0)
        bulk_insert(db, exam, make_shift(exam), 21)
        assert IncrementalService(db).check_significance(exam.id).is_significant is True

    def test_decision_uses_unrounded_share_above_threshold(self, db, make_exam, make_shift):
        # 1 of 3 is 33.333...%, reported as 33.33
        exam = make_exam(subs_at_last_normalization=3, re_norm_threshold=33.333)
        bulk_insert(db, exam, make_shift(exam), 4)

        result = IncrementalService(db).check_significance(exam.id)
        assert result.percent_new == 33.33
        assert result.is_significant is True

    def test_decision_uses_unrounded_share_below_threshold(self, db, make_exam, make_shift):
        # 100 of 2001 is 4.9975%, reported as 5.0
        exam = make_exam(subs_at_last_normalization=2001, re_norm_threshold=5.0)
        bulk_insert(db, exam, make_shift(exam), 2101)

        result = IncrementalService(db).check_significance(exam.id)
        assert result.percent_new == 5.0
        assert result.is_significant is False

    def test_never_normalized_with_new_submissions(self, db, make_exam, make_shift):
        exam = make_exam()
        bulk_insert(db, exam, make_shift(exam), 3)

        result = IncrementalService(db).check_significance(exam.id)
        assert result.percent_new == 100.0
        assert result.is_significant is True

    def test_default_threshold_when_unset(self, db, make_exam, make_shift):
        exam = make_exam(subs_at_last_normalization=100, re_norm_threshold=None)
        bulk_insert(db, exam, make_shift(exam), 103)

        result = IncrementalService(db).check_significance(exam.id)
        assert result.threshold == 5.0
        assert result.is_significant is False

    def test_unknown_exam_is_not_significant(self, db):
        result = IncrementalService(db).check_significance(9999)
        assert result.is_significant is False
        assert result.total_count == 0


class TestNormalizeNewSubmission:
    def test_skipped_before_first_full_run(self, db, make_exam, make_shift, add_scores, make_submission):
        exam = make_exam()
        shift = make_shift(exam)
        add_scores(exam, shift, [40, 60, 80])
        late = make_submission(exam, shift, 70)

        result = IncrementalService(db).normalize_new_submission(late.id, exam.id, shift.id, 70)

        assert result is None
        db.refresh(late)
        assert late.normalized_score is None

    def test_skipped_when_disabled(self, db, make_exam, make_shift, make_submission):
        exam = make_exam(has_normalization=False, last_normalized_at=utcnow())
        shift = make_shift(exam, avg_raw_score=50.0, std_dev=10.0)
        late = make_submission(exam, shift, 70)

        assert IncrementalService(db).normalize_new_submission(late.id, exam.id, shift.id, 70) is None

    def test_uses_cached_statistics(self, db, make_exam, make_shift, add_scores, make_submission):
        exam = make_exam()
        shift_a = make_shift(exam, 1)
        shift_b = make_shift(exam, 2)
        add_scores(exam, shift_a, [100, 120, 140])
        add_scores(exam, shift_b, [75, 100, 125])
        NormalizationService(db).normalize_exam(exam)
        db.refresh(exam)
        db.refresh(shift_a)
        cached_mean, cached_std = shift_a.avg_raw_score, shift_a.std_dev

        late = make_submission(exam, shift_a, 150)
        result = IncrementalService(db).normalize_new_submission(late.id, exam.id, shift_a.id, 150)

        expected = (150 - cached_mean) / cached_std * exam.global_std_dev_raw + exam.global_mean_raw
        assert result == pytest.approx(expected)
        db.refresh(late)
        db.refresh(shift_a)
        assert late.normalized_score == pytest.approx(expected)
        # Shift statistics are read, not recomputed
        assert shift_a.avg_raw_score == cached_mean
        assert shift_a.candidate_count == 3


class TestHandlePostSubmission:
    def test_ranks_and_cutoffs_refresh_when_significant(self, db, make_exam, make_shift, add_scores, make_submission):
        exam = make_exam()
        shift = make_shift(exam)
        add_scores(exam, shift, [float(s) for s in range(60, 160, 5)])
        NormalizationService(db).normalize_exam(exam)

        late = make_submission(exam, shift, 158)
        result = IncrementalService(db).handle_post_submission(late.id, exam.id, shift.id, 158)

        assert result.normalized_score is not None
        assert result.ranks_recalculated is True
        # 1 new on top of 20 -> 5%
        assert result.significance.percent_new == 5.0
        assert result.significance.is_significant is True
        assert result.cutoffs_updated is True

        db.expire_all()
        late_row = db.get(Submission, late.id)
        assert late_row.overall_rank == 1
        cutoff = db.execute(select(Cutoff).where(Cutoff.exam_id == exam.id)).scalar_one()
        assert cutoff.prediction_basis["factors"][-1] == "incremental_update"

    def test_cutoffs_untouched_below_threshold(self, db, make_exam, make_shift, add_scores, make_submission):
        exam = make_exam(re_norm_threshold=50.0)
        shift = make_shift(exam)
        add_scores(exam, shift, [float(s) for s in range(60, 160, 5)])
        NormalizationService(db).normalize_exam(exam)

        late = make_submission(exam, shift, 90)
        result = IncrementalService(db).handle_post_submission(late.id, exam.id, shift.id, 90)

        assert result.significance.is_significant is False
        assert result.cutoffs_updated is False
        assert db.execute(select(Cutoff)).first() is None

    @pytest.mark.parametrize("job_exam", ["same", "all"])
    def test_rank_deferred_while_normalization_job_active(
        self, db, make_exam, make_shift, add_scores, make_submission, job_exam
    ):
        exam = make_exam(re_norm_threshold=50.0)
        shift = make_shift(exam)
        add_scores(exam, shift, [float(s) for s in range(60, 160, 5)])
        NormalizationService(db).normalize_exam(exam)
        db.add(
            JobRun(
                job_name="normalization",
                job_type=JobType.NORMALIZATION,
                status=JobStatus.RUNNING,
                job_metadata={"examId": exam.id if job_exam == "same" else None},
            )
        )
        db.commit()

        late = make_submission(exam, shift, 158)
        result = IncrementalService(db).handle_post_submission(late.id, exam.id, shift.id, 158)

        assert result.normalized_score is not None
        assert result.ranks_recalculated is False
        db.expire_all()
        assert db.get(Submission, late.id).overall_rank is None

    def test_unrelated_jobs_do_not_block_ranking(self, db, make_exam, make_shift, add_scores, make_submission):
        exam = make_exam(re_norm_threshold=50.0)
        other = make_exam()
        shift = make_shift(exam)
        add_scores(exam, shift, [float(s) for s in range(60, 160, 5)])
        NormalizationService(db).normalize_exam(exam)
        db.add_all(
            [
                JobRun(
                    job_name="normalization (other exam)",
                    job_type=JobType.NORMALIZATION,
                    status=JobStatus.PENDING,
                    job_metadata={"examId": other.id},
                ),
                JobRun(
                    job_name="rank_calculation (exam)",
                    job_type=JobType.RANK_CALCULATION,
                    status=JobStatus.RUNNING,
                    job_metadata={"examId": exam.id},
                ),
            ]
        )
        db.commit()

        late = make_submission(exam, shift, 158)
        result = IncrementalService(db).handle_post_submission(late.id, exam.id, shift.id, 158)

        assert result.ranks_recalculated is True
        db.expire_all()
        assert db.get(Submission, late.id).overall_rank == 1


class TestStatus:
    def test_recommendations(self, db, make_exam, make_shift, add_scores):
        fresh = make_exam()
        add_scores(fresh, make_shift(fresh), [10, 20])

        steady = make_exam()
        steady_shift = make_shift(steady)
        add_scores(steady, steady_shift, [10, 20, 30, 40])
        NormalizationService(db).normalize_exam(steady)

        drifted = make_exam()
        drifted_shift = make_shift(drifted)
        add_scores(drifted, drifted_shift, [10, 20])
        NormalizationService(db).normalize_exam(drifted)
        add_scores(drifted, drifted_shift, [30])

        statuses = {s.exam_id: s for s in IncrementalService(db).get_status()}
        assert statuses[fresh.id].recommendation == RECOMMEND_INITIAL
        assert statuses[steady.id].recommendation == RECOMMEND_INCREMENTAL
        assert statuses[drifted.id].recommendation == RECOMMEND_FULL
        assert statuses[drifted.id].normalization_version == 1

    def test_unknown_exam(self, db):
        with pytest.raises(NotFoundError):
            IncrementalService(db).get_status(12345)


class TestThreshold:
    def test_update(self, db, make_exam):
        exam = make_exam()
        updated = IncrementalService(db).update_threshold(exam.id, 12.5)
        assert updated.re_norm_threshold == 12.5

    @pytest.mark.parametrize("value", [-1, 100.5])
    def test_out_of_range(self, db, make_exam, value):
        exam = make_exam()
        with pytest.raises(ValidationError):
            IncrementalService(db).update_threshold(exam.id, value)
