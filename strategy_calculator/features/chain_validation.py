"""Data-quality checks on quoted contracts."""

from __future__ import annotations

from strategy_calculator.config import ValidationSettings, get_settings
from strategy_calculator.models.chain import OptionContract
from strategy_calculator.models.result import ChainIssue, IssueSeverity


def validate_contract(
    contract: OptionContract,
    underlying_price: float,
    settings: ValidationSettings | None = None,
) -> list[ChainIssue]:
    cfg = settings or get_settings().validation
    issues: list[ChainIssue] = []

    def _issue(severity: IssueSeverity, message: str) -> None:
        issues.append(ChainIssue(
            strike=contract.strike,
            contract_type=contract.contract_type.value,
            severity=severity,
            message=message,
        ))

    mid = contract.mid
    if contract.bid > contract.ask:
        _issue(IssueSeverity.ERROR, f"bid {contract.bid:.2f} above ask {contract.ask:.2f}")
    elif mid > 0 and contract.spread > mid * cfg.max_spread_pct_of_mid:
        _issue(IssueSeverity.WARNING, f"wide spread {contract.spread:.2f} on mid {mid:.2f}")

    if contract.is_otm(underlying_price) and contract.premium > underlying_price * cfg.max_otm_premium_pct:
        _issue(IssueSeverity.ERROR, f"OTM premium {contract.premium:.2f} implausible for price {underlying_price:.2f}")

    intrinsic = contract.intrinsic_value(underlying_price)
    if intrinsic > 0 and mid < intrinsic * cfg.min_intrinsic_ratio:
        _issue(IssueSeverity.WARNING, f"mid {mid:.2f} below intrinsic {intrinsic:.2f}")

    return issues


def validate_chain(
    contracts: list[OptionContract],
    underlying_price: float,
    settings: ValidationSettings | None = None,
) -> list[ChainIssue]:
    """Issues for every contract, in input order."""
    issues: list[ChainIssue] = []
    for contract in contracts:
        issues.extend(validate_contract(contract, underlying_price, settings))
    return issues
