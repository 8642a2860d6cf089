"""Tests for shift statistics aggregation and difficulty labels."""

import statistics

import pytest

from examrank.models.shift import DifficultyLabel
from examrank.services.shift_statistics import (
    ShiftStatisticsService,
    calculate_difficulty_index,
    difficulty_label,
)
from examrank.utils.statistics import percentile_cont, sample_distribution, summarize_scores


class TestDifficultyIndex:
    def test_average_only_shift_is_easy(self):
        # avg = 50% of max, no spread, no topper gap
        index = calculate_difficulty_index(100.0, 0.0, 100.0, 200.0, 10)
        assert index == pytest.approx(0.20)
        assert difficulty_label(index) == DifficultyLabel.EASY

    def test_low_average_wide_spread_is_hard(self):
        # 0.4 * 0.8 + 0.3 * 1.0 + 0.3 * 0.7
        index = calculate_difficulty_index(40.0, 40.0, 180.0, 200.0, 50)
        assert index == pytest.approx(0.83)
        assert difficulty_label(index) == DifficultyLabel.HARD

    def test_spread_factor_is_capped(self):
        capped = calculate_difficulty_index(40.0, 400.0, 40.0, 200.0, 50)
        assert capped == pytest.approx(0.4 * 0.8 + 0.3)

    def test_empty_shift_defaults_to_moderate(self):
        index = calculate_difficulty_index(None, None, None, 200.0, 0)
        assert index == 0.5
        assert difficulty_label(index) == DifficultyLabel.MODERATE

    def test_zero_average(self):
        assert calculate_difficulty_index(0.0, 5.0, 10.0, 200.0, 3) == pytest.approx(0.4 + 0.3 + 0.3 * 0.05)
        assert calculate_difficulty_index(0.0, 0.0, 0.0, 200.0, 3) == pytest.approx(0.4)

    def test_label_thresholds_are_strict(self):
        assert difficulty_label(0.55) == DifficultyLabel.MODERATE
        assert difficulty_label(0.5501) == DifficultyLabel.HARD
        assert difficulty_label(0.38) == DifficultyLabel.EASY
        assert difficulty_label(0.3801) == DifficultyLabel.MODERATE


class TestScoreHelpers:
    def test_summary_uses_sample_std_dev(self):
        summary = summarize_scores([100.0, 120.0, 140.0])
        assert summary.count == 3
        assert summary.mean == pytest.approx(120.0)
        assert summary.std_dev == pytest.approx(20.0)
        assert summary.median == pytest.approx(120.0)
        assert (summary.min, summary.max) == (100.0, 140.0)

    def test_single_score_has_zero_spread(self):
        assert summarize_scores([55.0]).std_dev == 0.0

    def test_empty_summary(self):
        summary = summarize_scores([])
        assert summary.count == 0
        assert summary.mean is None

    def test_percentile_cont_interpolates(self):
        assert percentile_cont([10.0, 20.0, 30.0, 40.0], 0.5) == pytest.approx(25.0)
        assert percentile_cont([], 0.5) is None

    def test_distribution_spans_full_range(self):
        table = sample_distribution([5.0, 1.0, 3.0], points=5)
        assert [p["percentile"] for p in table] == [0.0, 25.0, 50.0, 75.0, 100.0]
        assert table[0]["score"] == 1.0
        assert table[-1]["score"] == 5.0
        assert table[2]["score"] == 3.0


class TestAggregateExam:
    def test_persists_shift_stats(self, db, make_exam, make_shift, add_scores):
        exam = make_exam()
        morning = make_shift(exam, 1)
        evening = make_shift(exam, 2)
        add_scores(exam, morning, [100, 120, 140])
        add_scores(exam, evening, [75, 100, 125])

        profile = ShiftStatisticsService(db).aggregate_exam(exam)
        db.commit()

        all_scores = [100, 120, 140, 75, 100, 125]
        assert profile.summary.count == 6
        assert profile.global_mean == pytest.approx(statistics.mean(all_scores))
        assert profile.global_std_dev == pytest.approx(statistics.stdev(all_scores))

        db.refresh(morning)
        assert morning.candidate_count == 3
        assert morning.avg_raw_score == pytest.approx(120.0)
        assert morning.std_dev == pytest.approx(20.0)
        assert morning.max_raw_score == 140.0
        assert morning.min_raw_score == 100.0
        assert morning.median_raw_score == pytest.approx(120.0)
        assert morning.stats_updated_at is not None
        assert morning.normalization_factor == pytest.approx(profile.global_std_dev / 20.0)
        assert morning.difficulty_index == pytest.approx(
            calculate_difficulty_index(120.0, 20.0, 140.0, 200.0, 3)
        )
        assert morning.difficulty_label == difficulty_label(morning.difficulty_index).value

    def test_empty_shift_gets_defaults(self, db, make_exam, make_shift, add_scores):
        exam = make_exam()
        populated = make_shift(exam, 1)
        empty = make_shift(exam, 2)
        add_scores(exam, populated, [60, 70, 80])

        ShiftStatisticsService(db).aggregate_exam(exam)
        db.commit()
        db.refresh(empty)

        assert empty.candidate_count == 0
        assert empty.avg_raw_score is None
        assert empty.difficulty_index == 0.5
        assert empty.difficulty_label == "Moderate"
        assert empty.normalization_factor == 1.0
