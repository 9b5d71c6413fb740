"""Tests for the outcome distribution and probability of profit."""

import math
from datetime import timedelta

import numpy as np
import pytest

from conftest import AS_OF
from strategy_calculator.config import ProbabilitySettings
from strategy_calculator.data.exceptions import InvalidStrategyInput
from strategy_calculator.features.normal import norm_cdf, norm_pdf
from strategy_calculator.features.probability import (
    compute_probability,
    needs_log_grid,
    outcome_std_dev,
    price_grid,
)
from strategy_calculator.models.chain import ContractType
from strategy_calculator.models.strategy import DistributionFlag, LegAction, StrategyLeg

EXP = AS_OF + timedelta(days=30)


def _strangle(action: LegAction, put_premium: float = 1.40, call_premium: float = 1.10) -> list[StrategyLeg]:
    return [
        StrategyLeg(action=action, contract_type=ContractType.PUT, strike=166,
                    premium=put_premium, expiration_date=EXP),
        StrategyLeg(action=action, contract_type=ContractType.CALL, strike=185,
                    premium=call_premium, expiration_date=EXP),
    ]


@pytest.fixture
def long_strangle_analysis(settings):
    return compute_probability(
        175.50, 25.0, 30, _strangle(LegAction.BUY),
        lower_breakeven=163.50, upper_breakeven=187.50,
        settings=settings.probability,
    )


class TestNormal:
    def test_cdf_matches_erf(self) -> None:
        xs = np.linspace(-5, 5, 201)
        exact = np.array([0.5 * (1 + math.erf(x / math.sqrt(2))) for x in xs])
        assert np.max(np.abs(norm_cdf(xs) - exact)) < 1e-6

    def test_scalar_in_scalar_out(self) -> None:
        assert isinstance(norm_cdf(0.0), float)
        assert norm_cdf(0.0) == pytest.approx(0.5, abs=1e-7)
        assert norm_pdf(0.0) == pytest.approx(1 / math.sqrt(2 * math.pi))

    def test_cdf_bounds(self) -> None:
        assert norm_cdf(-40.0) == pytest.approx(0.0, abs=1e-12)
        assert norm_cdf(40.0) == pytest.approx(1.0, abs=1e-12)


class TestGrid:
    def test_std_dev(self) -> None:
        assert outcome_std_dev(100, 20, 365) == pytest.approx(20.0)
        assert outcome_std_dev(100, 0, 30) == 0.0
        assert outcome_std_dev(100, 20, 0) == 0.0

    def test_grid_sorted_and_spans_four_sigma(self) -> None:
        grid = price_grid(100.0, 5.0, ProbabilitySettings())
        assert np.all(np.diff(grid) > 0)
        assert grid[0] == pytest.approx(80.0)
        assert grid[-1] == pytest.approx(120.0)

    def test_grid_denser_near_mean(self) -> None:
        grid = price_grid(100.0, 5.0, ProbabilitySettings())
        steps = np.diff(grid)
        assert steps[len(steps) // 2] < steps[0]

    def test_grid_floored_above_zero(self) -> None:
        grid = price_grid(10.0, 20.0, ProbabilitySettings())
        assert grid.min() == pytest.approx(0.01)
        assert len(grid) == len(np.unique(grid))


class TestComputeProbability:
    def test_cumulative_monotone_and_bounded(self, long_strangle_analysis) -> None:
        points = long_strangle_analysis.points
        prices = [p.price for p in points]
        cdf = [p.cumulative_below for p in points]
        assert prices == sorted(prices)
        assert all(b >= a for a, b in zip(cdf, cdf[1:]))
        assert all(0.0 <= c <= 1.0 for c in cdf)
        assert all(p.probability_density >= 0 for p in points)

    def test_tails_cover_extremes(self, long_strangle_analysis) -> None:
        points = long_strangle_analysis.points
        assert points[0].cumulative_below < 1e-3
        assert points[-1].cumulative_below > 1 - 1e-3

    def test_regions_sum_to_one(self, long_strangle_analysis) -> None:
        a = long_strangle_analysis
        total = a.probability_below_lower + a.probability_between + a.probability_above_upper
        assert total == pytest.approx(1.0, abs=1e-5)

    def test_long_strangle_profits_in_tails(self, long_strangle_analysis) -> None:
        a = long_strangle_analysis
        assert a.probability_of_profit == pytest.approx(
            a.probability_below_lower + a.probability_above_upper, abs=1e-5
        )
        assert 0 < a.probability_of_profit < 0.5

    def test_profitable_flags_follow_pnl(self, long_strangle_analysis) -> None:
        for point in long_strangle_analysis.points:
            if abs(point.pnl) > 1e-3:
                assert point.is_profitable == (point.pnl > 0)
            if point.price < 163.0 or point.price > 188.0:
                assert point.is_profitable

    def test_short_strangle_complements_long(self, settings) -> None:
        short = compute_probability(
            175.50, 25.0, 30, _strangle(LegAction.SELL),
            lower_breakeven=163.50, upper_breakeven=187.50,
            settings=settings.probability,
        )
        assert short.probability_of_profit == pytest.approx(short.probability_between, abs=1e-5)
        assert short.distribution_flag == DistributionFlag.NORMAL

    def test_std_dev_reported(self, long_strangle_analysis) -> None:
        expected = 175.50 * 0.25 * math.sqrt(30 / 365)
        assert long_strangle_analysis.std_dev == pytest.approx(expected, rel=1e-5)


class TestDegenerate:
    def test_zero_iv_is_point_mass(self, settings) -> None:
        a = compute_probability(
            175.50, 0.0, 30, _strangle(LegAction.BUY),
            lower_breakeven=163.50, upper_breakeven=187.50,
            settings=settings.probability,
        )
        assert a.is_degenerate
        assert a.std_dev == 0.0
        assert len(a.points) == 1
        assert a.points[0].price == 175.50
        assert not any(math.isnan(p.probability_density) for p in a.points)
        assert a.probability_of_profit == 0.0
        assert a.probability_between == 1.0

    def test_zero_dte_short_strangle_wins(self, settings) -> None:
        a = compute_probability(
            175.50, 25.0, 0, _strangle(LegAction.SELL),
            lower_breakeven=163.50, upper_breakeven=187.50,
            settings=settings.probability,
        )
        assert a.is_degenerate
        assert a.probability_of_profit == 1.0


class TestInvalidInput:
    @pytest.mark.parametrize("price,iv,dte", [(0.0, 25.0, 30), (-5.0, 25.0, 30), (100.0, -1.0, 30), (100.0, 25.0, -1)])
    def test_rejected(self, price, iv, dte, settings) -> None:
        with pytest.raises(InvalidStrategyInput):
            compute_probability(price, iv, dte, _strangle(LegAction.BUY), settings=settings.probability)


class TestWideDistribution:
    """High IV over a long horizon would push a normal curve below zero."""

    @pytest.fixture
    def wide(self, settings):
        exp = AS_OF + timedelta(days=90)
        legs = [
            StrategyLeg(action=LegAction.BUY, contract_type=ContractType.PUT, strike=90,
                        premium=5.0, expiration_date=exp),
            StrategyLeg(action=LegAction.BUY, contract_type=ContractType.CALL, strike=110,
                        premium=5.0, expiration_date=exp),
        ]
        return compute_probability(100.0, 100.0, 90, legs, 80.0, 120.0, settings=settings.probability)

    def test_switches_to_lognormal(self, wide) -> None:
        assert wide.distribution_flag == DistributionFlag.LOGNORMAL

    def test_tails_still_covered(self, wide) -> None:
        assert wide.points[0].cumulative_below < 1e-3
        assert wide.points[-1].cumulative_below > 1 - 1e-3

    def test_prices_positive_and_increasing(self, wide) -> None:
        prices = [p.price for p in wide.points]
        assert prices[0] > 0
        assert all(b > a for a, b in zip(prices, prices[1:]))
        assert all(p.probability_density >= 0 for p in wide.points)

    def test_region_probabilities_follow_log_model(self, wide) -> None:
        sigma = math.sqrt(90 / 365)
        mu = math.log(100.0) - 0.5 * sigma * sigma
        expected_below = 0.5 * (1 + math.erf((math.log(80.0) - mu) / (sigma * math.sqrt(2))))
        assert wide.probability_below_lower == pytest.approx(expected_below, abs=1e-5)
        total = wide.probability_below_lower + wide.probability_between + wide.probability_above_upper
        assert total == pytest.approx(1.0, abs=1e-5)
        assert wide.probability_of_profit == pytest.approx(
            wide.probability_below_lower + wide.probability_above_upper, abs=1e-5
        )

    def test_moderate_volatility_stays_normal(self, settings) -> None:
        assert not needs_log_grid(100.0, outcome_std_dev(100.0, 30.0, 30), settings.probability)
        assert needs_log_grid(100.0, outcome_std_dev(100.0, 100.0, 90), settings.probability)
