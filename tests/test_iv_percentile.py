"""Tests for IV percentile estimates."""

from datetime import date

import pytest

from strategy_calculator.features.iv_percentile import estimate_iv_percentile, iv_percentile_from_chain
from strategy_calculator.models.chain import ContractType, OptionContract


def _contracts(ivs: list[float | None]) -> list[OptionContract]:
    return [
        OptionContract(
            strike=100 + i, contract_type=ContractType.CALL,
            expiration_date=date(2026, 4, 17), bid=1.0, ask=1.1,
            implied_volatility=iv,
        )
        for i, iv in enumerate(ivs)
    ]


class TestFromChain:
    def test_share_below(self) -> None:
        assert iv_percentile_from_chain(28.0, _contracts([0.20, 0.25, 0.30, 0.35])) == 50.0

    def test_clamped(self) -> None:
        contracts = _contracts([0.20, 0.25])
        assert iv_percentile_from_chain(10.0, contracts) == 1.0
        assert iv_percentile_from_chain(90.0, contracts) == 99.0

    def test_no_ivs(self) -> None:
        assert iv_percentile_from_chain(25.0, _contracts([None, None])) is None
        assert iv_percentile_from_chain(25.0, []) is None


class TestEstimate:
    @pytest.mark.parametrize("iv,expected", [(0.0, 10.0), (15.0, 30.0), (25.0, 50.0), (35.0, 70.0), (100.0, 90.0), (300.0, 90.0)])
    def test_piecewise(self, iv, expected) -> None:
        assert estimate_iv_percentile(iv) == pytest.approx(expected)
