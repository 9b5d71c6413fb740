"""Tests for contract data-quality checks."""

from datetime import date

from strategy_calculator.features.chain_validation import validate_chain, validate_contract
from strategy_calculator.models.chain import ContractType, OptionContract
from strategy_calculator.models.result import IssueSeverity

EXP = date(2026, 4, 17)


def _contract(strike: float, contract_type: ContractType, bid: float, ask: float) -> OptionContract:
    return OptionContract(strike=strike, contract_type=contract_type, expiration_date=EXP, bid=bid, ask=ask)


class TestValidateContract:
    def test_clean_contract(self, settings) -> None:
        assert validate_contract(_contract(100, ContractType.CALL, 2.40, 2.50), 100.0, settings.validation) == []

    def test_crossed_quote(self, settings) -> None:
        issues = validate_contract(_contract(100, ContractType.CALL, 2.0, 1.0), 100.0, settings.validation)
        assert [i.severity for i in issues] == [IssueSeverity.ERROR]
        assert "above ask" in issues[0].message

    def test_wide_spread(self, settings) -> None:
        issues = validate_contract(_contract(105, ContractType.CALL, 0.50, 1.50), 100.0, settings.validation)
        assert [i.severity for i in issues] == [IssueSeverity.WARNING]

    def test_implausible_otm_premium(self, settings) -> None:
        issues = validate_contract(_contract(110, ContractType.CALL, 59.9, 60.1), 100.0, settings.validation)
        assert any(i.severity == IssueSeverity.ERROR and "OTM" in i.message for i in issues)

    def test_below_intrinsic(self, settings) -> None:
        issues = validate_contract(_contract(90, ContractType.CALL, 8.0, 8.2), 100.0, settings.validation)
        assert any("intrinsic" in i.message for i in issues)
        assert issues[0].contract_type == "call"
        assert issues[0].strike == 90


class TestValidateChain:
    def test_collects_in_order(self, settings) -> None:
        contracts = [
            _contract(100, ContractType.PUT, 2.40, 2.50),
            _contract(95, ContractType.PUT, 2.0, 1.0),
            _contract(105, ContractType.CALL, 0.50, 1.50),
        ]
        issues = validate_chain(contracts, 100.0, settings.validation)
        assert [i.strike for i in issues] == [95, 105]
