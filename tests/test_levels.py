"""Tests for the level curve."""

import math

import pytest

from habit_xp.errors import InvalidArgumentError
from habit_xp.levels import (
    cumulative_exp_for_level,
    level_from_total_exp,
    level_milestone,
    level_preview,
    prestige_for_level,
    required_exp,
)


class TestRequiredExp:
    def test_level_1(self):
        assert required_exp(1) == 100

    def test_level_5(self):
        assert required_exp(5) == 500

    def test_level_10(self):
        assert required_exp(10) == 1000

    def test_level_0_returns_0(self):
        assert required_exp(0) == 0

    def test_negative_level_returns_0(self):
        assert required_exp(-3) == 0

    def test_mild_exponential_band(self):
        assert required_exp(11) == math.floor(200 * 11 * 1.1 ** 1)
        assert required_exp(20) == math.floor(200 * 20 * 1.1 ** 10)

    def test_steep_band_after_plateau(self):
        assert required_exp(40) == math.floor(500 * 40 * 1.2 ** 10)

    def test_band_start_holds_previous_peak(self):
        # The raw 31 value is far below level 30's requirement.
        assert required_exp(31) == required_exp(30)
        assert required_exp(51) == required_exp(50)

    def test_never_decreases(self):
        for lv in range(1, 120):
            assert required_exp(lv) <= required_exp(lv + 1)


class TestCumulativeExpForLevel:
    def test_level_1_needs_nothing(self):
        assert cumulative_exp_for_level(1) == 0

    def test_level_2(self):
        assert cumulative_exp_for_level(2) == 100

    def test_level_6(self):
        # 100 + 200 + 300 + 400 + 500
        assert cumulative_exp_for_level(6) == 1500


class TestLevelFromTotalExp:
    def test_zero(self):
        info = level_from_total_exp(0)
        assert info.level == 1
        assert info.current_level_exp == 0
        assert info.required_exp_for_level == 100
        assert info.progress_percent == 0

    def test_exact_threshold_moves_to_next_level(self):
        info = level_from_total_exp(1000)
        assert info.level == 5
        assert info.current_level_exp == 0

    def test_just_below_threshold(self):
        info = level_from_total_exp(1499)
        assert info.level == 5
        assert info.current_level_exp == 499
        assert info.required_exp_for_level == 500
        assert info.progress_percent == pytest.approx(99.8)

    def test_1500_reaches_level_6(self):
        info = level_from_total_exp(1500)
        assert info.level == 6
        assert info.current_level_exp == 0

    def test_next_level_required(self):
        info = level_from_total_exp(250)
        assert info.level == 2
        assert info.next_level_required_exp == 300

    def test_total_is_echoed(self):
        assert level_from_total_exp(777).total_exp == 777

    def test_idempotent(self):
        for total in (0, 99, 100, 4321, 123456):
            assert level_from_total_exp(total) == level_from_total_exp(total)

    def test_roundtrip_with_cumulative(self):
        for lv in (2, 7, 15, 33, 52):
            info = level_from_total_exp(cumulative_exp_for_level(lv))
            assert info.level == lv
            assert info.current_level_exp == 0

    def test_monotonic_in_total(self):
        previous = 0
        for total in range(0, 200_000, 997):
            level = level_from_total_exp(total).level
            assert level >= previous
            previous = level

    def test_negative_raises(self):
        with pytest.raises(InvalidArgumentError):
            level_from_total_exp(-1)

    def test_float_raises(self):
        with pytest.raises(InvalidArgumentError):
            level_from_total_exp(10.5)

    def test_bool_raises(self):
        with pytest.raises(InvalidArgumentError):
            level_from_total_exp(True)

    def test_invalid_argument_is_value_error(self):
        with pytest.raises(ValueError):
            level_from_total_exp(-10)

    def test_no_prestige_below_100(self):
        assert level_from_total_exp(5000).prestige_level is None


class TestPrestige:
    def test_at_100_is_none(self):
        assert prestige_for_level(100) is None

    def test_just_past_100(self):
        assert prestige_for_level(101) == 0

    def test_bands_of_ten(self):
        assert prestige_for_level(110) == 1
        assert prestige_for_level(125) == 2


class TestMilestones:
    def test_named(self):
        assert level_milestone(10) == "Novice graduate"
        assert level_milestone(100) == "Master"

    def test_generic_multiple_of_ten(self):
        assert level_milestone(20) == "Level 20 reached"

    def test_other_levels(self):
        assert level_milestone(7) is None


class TestLevelPreview:
    def test_default_five_levels(self):
        previews = level_preview(3)
        assert [p.level for p in previews] == [4, 5, 6, 7, 8]

    def test_requirements_and_totals(self):
        first = level_preview(1, levels_ahead=1)[0]
        assert first.level == 2
        assert first.required_exp == 200
        assert first.total_exp_needed == 100

    def test_milestone_included(self):
        previews = level_preview(8, levels_ahead=3)
        assert previews[1].level == 10
        assert previews[1].milestone == "Novice graduate"
        assert previews[0].milestone is None

    def test_zero_ahead(self):
        assert level_preview(5, levels_ahead=0) == []

    def test_negative_ahead_raises(self):
        with pytest.raises(InvalidArgumentError):
            level_preview(5, levels_ahead=-1)
