"""Tests for category cutoff prediction."""

import numpy as np
import pytest
from sqlalchemy import select

from examrank.models import ConfidenceLevel, Cutoff, PREDICTION_POST_CODE
from examrank.services.cutoff import SOURCE_INCREMENTAL, CutoffPredictor


def cutoffs_for(db, exam_id):
    db.expire_all()
    rows = db.execute(select(Cutoff).where(Cutoff.exam_id == exam_id)).scalars().all()
    return {row.category: row for row in rows}


def add_normalized(add_scores, exam, shift, scores, **overrides):
    rows = add_scores(exam, shift, scores, **overrides)
    for row in rows:
        row.normalized_score = row.raw_score
    return rows


class TestGate:
    def test_exam_with_eighty_percent_normalized_is_skipped(self, db, make_exam, make_shift, add_scores):
        exam = make_exam()
        shift = make_shift(exam)
        add_normalized(add_scores, exam, shift, range(100, 180, 10))
        add_scores(exam, shift, [50, 60])
        db.commit()

        result = CutoffPredictor(db).predict_exam(exam)

        assert result.skipped
        assert "Normalization incomplete" in result.skipped_reason
        assert result.normalized_ratio == pytest.approx(0.8)
        assert cutoffs_for(db, exam.id) == {}

    def test_exam_without_submissions_is_skipped(self, db, make_exam):
        exam = make_exam()
        result = CutoffPredictor(db).predict_exam(exam)
        assert result.skipped_reason == "No submissions"

    def test_ninety_percent_passes_gate(self, db, make_exam, make_shift, add_scores):
        exam = make_exam()
        shift = make_shift(exam)
        add_normalized(add_scores, exam, shift, range(1, 10))
        add_scores(exam, shift, [5])
        db.commit()

        result = CutoffPredictor(db).predict_exam(exam)
        assert not result.skipped
        assert set(cutoffs_for(db, exam.id)) == {"UR"}


class TestPrediction:
    def test_cutoffs_per_category(self, db, make_exam, make_shift, add_scores):
        exam = make_exam()
        shift = make_shift(exam)
        ur_scores = [float(s) for s in range(1, 201)]
        sc_scores = [float(s) for s in range(20, 120, 2)]
        add_normalized(add_scores, exam, shift, ur_scores, category="UR")
        add_normalized(add_scores, exam, shift, sc_scores, category="SC")
        db.commit()

        CutoffPredictor(db).predict_exam(exam)
        cutoffs = cutoffs_for(db, exam.id)

        ur = cutoffs["UR"]
        expected = np.percentile(ur_scores, 85)
        assert ur.expected_cutoff == pytest.approx(expected)
        assert ur.safe_score == pytest.approx(expected + 5)
        assert ur.minimum_score == pytest.approx(expected - 5)
        assert ur.confidence_level == ConfidenceLevel.HIGH
        assert ur.post_code == PREDICTION_POST_CODE
        assert ur.post_name == "Generated Prediction"
        assert ur.prediction_basis["dataPoints"] == 200
        assert ur.prediction_basis["methodology"] == "percentile_distribution"
        assert ur.prediction_basis["factors"] == ["normalized_scores", "category_ratio", "batch_processing"]

        sc = cutoffs["SC"]
        assert sc.expected_cutoff == pytest.approx(np.percentile(sc_scores, 80))
        assert sc.confidence_level == ConfidenceLevel.MEDIUM

    def test_exam_ratio_override_and_default_ratio(self, db, make_exam, make_shift, add_scores):
        exam = make_exam(selection_ratios={"UR": 0.5})
        shift = make_shift(exam)
        scores = [float(s) for s in range(0, 101)]
        add_normalized(add_scores, exam, shift, scores, category="UR")
        add_normalized(add_scores, exam, shift, scores, category="PWD")
        db.commit()

        CutoffPredictor(db).predict_exam(exam, source=SOURCE_INCREMENTAL)
        cutoffs = cutoffs_for(db, exam.id)

        assert cutoffs["UR"].expected_cutoff == pytest.approx(50.0)
        assert cutoffs["PWD"].expected_cutoff == pytest.approx(85.0)
        assert cutoffs["UR"].prediction_basis["factors"][-1] == "incremental_update"

    def test_category_without_normalized_scores_is_skipped(self, db, make_exam, make_shift, add_scores):
        exam = make_exam()
        shift = make_shift(exam)
        add_normalized(add_scores, exam, shift, range(10, 200), category="UR")
        add_scores(exam, shift, [70, 80], category="ST")
        db.commit()

        CutoffPredictor(db).predict_exam(exam)
        assert set(cutoffs_for(db, exam.id)) == {"UR"}

    def test_rerun_overwrites_prediction(self, db, make_exam, make_shift, add_scores):
        exam = make_exam()
        shift = make_shift(exam)
        rows = add_normalized(add_scores, exam, shift, range(1, 101))
        db.commit()

        predictor = CutoffPredictor(db)
        predictor.predict_exam(exam)
        before = cutoffs_for(db, exam.id)["UR"]
        first_id, first_cutoff = before.id, before.expected_cutoff

        for row in rows:
            row.normalized_score = row.raw_score + 50
        db.commit()
        predictor.predict_exam(exam)

        db.expire_all()
        after = db.execute(select(Cutoff).where(Cutoff.exam_id == exam.id)).scalars().all()
        assert len(after) == 1
        assert after[0].id == first_id
        assert after[0].expected_cutoff == pytest.approx(first_cutoff + 50)
