"""
Tests for core/grading.py — quarterly mean, final grade and status rules.
"""

import os
import sys
import pytest

sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from core.grading import (
    APPROVED,
    FAILED,
    RECOVERY,
    calculate_final_grade,
    calculate_final_status,
    calculate_quarterly_mean,
    calculate_status,
    get_grade_thresholds,
    needs_recovery_exam,
    recalculate,
    recalculate_all,
    round_half_up,
)


def _scores(q1=None, q2=None, q3=None, q4=None, recovery=None):
    return {
        "quarter1": q1,
        "quarter2": q2,
        "quarter3": q3,
        "quarter4": q4,
        "recovery_score": recovery,
    }


class TestQuarterlyMean:
    """Tests for calculate_quarterly_mean."""

    def test_no_scores_is_absent(self):
        assert calculate_quarterly_mean(_scores()) is None

    def test_mean_of_present_scores_only(self):
        assert calculate_quarterly_mean(_scores(8.0, 7.0)) == 7.5

    def test_rounds_to_two_places(self):
        assert calculate_quarterly_mean(_scores(7, 7, 8)) == 7.33
        assert calculate_quarterly_mean(_scores(7, 8, 8)) == 7.67

    def test_round_half_up(self):
        assert round_half_up(2.675, 2) == 2.68
        assert round_half_up(0.125, 2) == 0.13
        assert round_half_up(66.65, 1) == 66.7

    def test_nan_and_blank_count_as_absent(self):
        assert calculate_quarterly_mean(_scores(float("nan"), "", 9.0)) == 9.0

    def test_zero_is_a_real_score(self):
        assert calculate_quarterly_mean(_scores(0.0, 10.0)) == 5.0


class TestStatus:
    """Status boundaries are inclusive at 6.0 and 4.0."""

    def test_absent(self):
        assert calculate_status(None) is None

    @pytest.mark.parametrize("grade,expected", [
        (10.0, APPROVED),
        (6.0, APPROVED),
        (5.99, RECOVERY),
        (4.0, RECOVERY),
        (3.99, FAILED),
        (0.0, FAILED),
    ])
    def test_bands(self, grade, expected):
        assert calculate_status(grade) == expected

    def test_recovery_eligibility_matches_recovery_band(self):
        assert needs_recovery_exam(4.0) is True
        assert needs_recovery_exam(5.99) is True
        assert needs_recovery_exam(6.0) is False
        assert needs_recovery_exam(3.99) is False
        assert needs_recovery_exam(None) is False


class TestFinalGrade:
    """Tests for calculate_final_grade and calculate_final_status."""

    def test_absent_consolidated(self):
        assert calculate_final_grade(None, 7.0) is None
        assert calculate_final_status(None, None) is None

    def test_recovery_ignored_when_approved(self):
        assert calculate_final_grade(6.0, 2.0) == 6.0
        assert calculate_final_status(6.0, 6.0) == APPROVED

    def test_recovery_averaged_in_band(self):
        assert calculate_final_grade(4.5, 7.0) == 5.75
        assert calculate_final_grade(5.33, 6.0) == round_half_up((5.33 + 6.0) / 2, 2)

    def test_no_recovery_keeps_consolidated(self):
        assert calculate_final_grade(4.5, None) == 4.5

    def test_recovery_averaged_below_floor(self):
        assert calculate_final_grade(2.0, 8.0) == 5.0
        assert calculate_final_grade(2.0, 10.0) == 6.0

    def test_below_floor_fails_whatever_the_final_grade(self):
        assert calculate_final_status(6.0, 2.0) == FAILED
        assert calculate_final_status(6.0, 2.0, final_pass_threshold=5.0) == FAILED

    def test_final_status_uses_given_threshold(self):
        assert calculate_final_status(5.75, 4.5, final_pass_threshold=5.0) == APPROVED
        assert calculate_final_status(5.75, 4.5, final_pass_threshold=6.0) == FAILED

    def test_final_status_pending_while_awaiting_recovery(self):
        assert calculate_final_status(4.5, 4.5, awaiting_recovery=True) is None
        assert calculate_final_status(4.5, 4.5) == FAILED


class TestRecalculate:
    """Scenarios for the full recalculate pipeline."""

    def test_all_fields_absent_without_scores(self):
        record = recalculate(_scores(recovery=7.0))
        for key in ("quarterly_mean", "consolidated_grade", "final_grade", "status", "final_status"):
            assert record[key] is None
        assert record["recovery_eligible"] is False

    def test_two_quarters_approved(self):
        record = recalculate(_scores(8.0, 7.0))
        assert record["quarterly_mean"] == 7.5
        assert record["consolidated_grade"] == 7.5
        assert record["status"] == APPROVED
        assert record["final_grade"] == 7.5
        assert record["final_status"] == APPROVED

    def test_exactly_pass_mark_ignores_recovery(self):
        record = recalculate(_scores(6.0, 6.0, 6.0, 6.0, recovery=1.0))
        assert record["status"] == APPROVED
        assert record["final_grade"] == 6.0
        assert record["final_status"] == APPROVED

    def test_recovery_scenario_without_recovery_score_fails(self):
        record = recalculate(_scores(5.0, 4.0, 5.0, 4.0))
        assert record["consolidated_grade"] == 4.5
        assert record["status"] == RECOVERY
        assert record["final_grade"] == 4.5
        assert record["recovery_eligible"] is True
        assert record["final_status"] == FAILED

    def test_recovery_scenario_pending_flag(self):
        record = recalculate(_scores(5.0, 4.0, 5.0, 4.0), pending_has_no_final_status=True)
        assert record["status"] == RECOVERY
        assert record["final_grade"] == 4.5
        assert record["final_status"] is None

    def test_pending_flag_resolves_once_recovery_arrives(self):
        record = recalculate(_scores(5.0, 4.0, 5.0, 4.0, recovery=8.0), pending_has_no_final_status=True)
        assert record["final_grade"] == 6.25
        assert record["final_status"] == APPROVED

    def test_pending_flag_leaves_other_bands_alone(self):
        approved = recalculate(_scores(8.0, 7.0), pending_has_no_final_status=True)
        failed = recalculate(_scores(2.0, 1.0, 3.0, 2.0), pending_has_no_final_status=True)
        assert approved["final_status"] == APPROVED
        assert failed["final_status"] == FAILED

    def test_recalculate_all_passes_pending_flag(self):
        records = recalculate_all([_scores(5.0, 4.0, 5.0, 4.0)], pending_has_no_final_status=True)
        assert records[0]["final_status"] is None
        assert recalculate_all([_scores(5.0, 4.0, 5.0, 4.0)])[0]["final_status"] == FAILED

    def test_recovery_scenario_with_threshold_five(self):
        record = recalculate(_scores(5.0, 4.0, 5.0, 4.0, recovery=7.0), final_pass_threshold=5.0)
        assert record["final_grade"] == 5.75
        assert record["final_status"] == APPROVED

    def test_recovery_scenario_with_default_threshold(self):
        record = recalculate(_scores(5.0, 4.0, 5.0, 4.0, recovery=7.0))
        assert record["final_grade"] == 5.75
        assert record["final_status"] == FAILED

    @pytest.mark.parametrize("recovery", [None, 0.0, 7.0, 10.0])
    def test_failed_regardless_of_recovery(self, recovery):
        record = recalculate(_scores(2.0, 1.0, 3.0, 2.0, recovery=recovery))
        assert record["consolidated_grade"] == 2.0
        assert record["status"] == FAILED
        assert record["final_status"] == FAILED

    def test_low_student_recovery_still_averaged_in(self):
        record = recalculate(_scores(2.0, 1.0, 3.0, 2.0, recovery=8.0))
        assert record["final_grade"] == 5.0
        assert record["final_status"] == FAILED

    def test_does_not_mutate_input_and_keeps_identity(self):
        score_set = {"student_id": "S001", "name": "Ana", **_scores(9, 9), "status": "stale"}
        snapshot = dict(score_set)
        record = recalculate(score_set)
        assert score_set == snapshot
        assert record["student_id"] == "S001"
        assert record["name"] == "Ana"
        assert record["status"] == APPROVED

    def test_repeat_calls_are_identical(self):
        score_set = _scores(5.5, 4.25, 6.0, recovery=8.0)
        assert recalculate(score_set) == recalculate(score_set)


class TestThresholds:
    def test_thresholds_legend(self):
        result = get_grade_thresholds(final_pass_threshold=5.0)
        assert result["pass_threshold"] == 6.0
        assert result["recovery_threshold"] == 4.0
        assert result["final_pass_threshold"] == 5.0
        labels = [b["label"] for b in result["bands"]]
        assert labels == [APPROVED, RECOVERY, FAILED]
        assert result["bands"][0]["max"] == 10.0
        assert result["bands"][1]["max"] == 5.99
