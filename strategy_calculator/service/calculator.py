"""OptionsStrategyCalculator: top-level entry point for strategy calculations.

Drives ContractFilter -> StrikeSelector -> StrategyPricer -> ProbabilityModel
for one request, and wraps the provider boundary (timeouts, batch fan-out).

Usage::

    calc = OptionsStrategyCalculator(provider=FrameChainProvider.from_csv("chain.csv"))
    result = calc.calculate_for_symbol(
        LongStrangle(symbol="AAPL", expiration_date=date(2026, 4, 17)),
    )
    if result.ok:
        print(result.position.summary)
"""

from __future__ import annotations

import concurrent.futures
import logging
import uuid
from collections.abc import Mapping
from datetime import date, datetime
from typing import TYPE_CHECKING, Any

from pydantic import ValidationError

from strategy_calculator.config import Settings, get_settings
from strategy_calculator.data.exceptions import (
    DataUnavailable,
    InvalidStrategyInput,
    NoLiquidContracts,
    StrikeSelectionFailed,
)
from strategy_calculator.features.chain_validation import validate_contract
from strategy_calculator.features.contract_filter import filter_contracts
from strategy_calculator.features.expected_move import compute_expected_move
from strategy_calculator.features.iv_percentile import estimate_iv_percentile, iv_percentile_from_chain
from strategy_calculator.features.pricing import PricedStrategy, price_strategy
from strategy_calculator.features.probability import compute_probability
from strategy_calculator.features.strike_selection import StrikeSelection, select_custom_strikes, select_strikes
from strategy_calculator.features.vol_surface import build_parametric_surface, build_surface_from_chain
from strategy_calculator.models.chain import OptionContract, OptionsChain
from strategy_calculator.models.probability import ExpectedMove
from strategy_calculator.models.request import (
    REQUEST_ADAPTER,
    REQUEST_TYPES,
    DiagonalCalendar,
    StrategyRequest,
    StrategyRequestBase,
)
from strategy_calculator.models.result import CalculationResult, CalculationStatus, ChainIssue
from strategy_calculator.models.strategy import StrategyLeg, StrategyPosition, StrategyType
from strategy_calculator.models.vol_surface import VolatilitySurfaceData

if TYPE_CHECKING:
    from strategy_calculator.data.provider import OptionsDataProvider
    from strategy_calculator.service.cache import TTLCache

logger = logging.getLogger(__name__)


class OptionsStrategyCalculator:
    """Compute strategy positions from chain snapshots.

    ``calculate`` is pure (no I/O). ``calculate_for_symbol`` and
    ``calculate_batch`` fetch from the injected provider with a bounded
    timeout and report fetch failures as ``data_unavailable`` results.
    """

    def __init__(
        self,
        provider: OptionsDataProvider | None = None,
        settings: Settings | None = None,
        cache: TTLCache | None = None,
        fetch_timeout: float | None = None,
    ) -> None:
        self.provider = provider
        self.settings = settings or get_settings()
        self.cache = cache
        engine = self.settings.engine
        self.fetch_timeout = fetch_timeout if fetch_timeout is not None else engine.fetch_timeout_seconds
        self._io_pool = concurrent.futures.ThreadPoolExecutor(
            max_workers=engine.batch_worker_limit,
            thread_name_prefix="chain-fetch",
        )

    # -- Lifecycle --

    def close(self) -> None:
        self._io_pool.shutdown(wait=False, cancel_futures=True)

    def __enter__(self) -> OptionsStrategyCalculator:
        return self

    def __exit__(self, *exc: object) -> None:
        self.close()

    # -- Requests --

    @staticmethod
    def parse_request(data: Mapping[str, Any] | StrategyRequest) -> StrategyRequest:
        """Validate a mapping into a strategy request variant.

        Raises:
            InvalidStrategyInput: unknown strategy type or malformed fields.
        """
        if isinstance(data, StrategyRequestBase):
            return data  # type: ignore[return-value]
        if not isinstance(data, Mapping):
            raise InvalidStrategyInput(f"Expected a mapping, got {type(data).__name__}")
        strategy = data.get("strategy_type")
        if not isinstance(strategy, str) or strategy not in REQUEST_TYPES:
            raise InvalidStrategyInput(f"Unknown strategy type: {strategy!r}")
        try:
            return REQUEST_ADAPTER.validate_python(dict(data))
        except ValidationError as e:
            raise InvalidStrategyInput(f"Invalid {strategy} request: {e}") from e

    def _validate(self, request: StrategyRequest, underlying_price: float, as_of: date) -> None:
        if underlying_price <= 0:
            raise InvalidStrategyInput(f"{request.symbol}: underlying price must be positive, got {underlying_price}")
        if isinstance(request, DiagonalCalendar):
            return
        if request.expiration_date is None:
            raise InvalidStrategyInput(f"{request.symbol}: {request.strategy_type} requires an expiration_date")
        dte = (request.expiration_date - as_of).days
        if dte <= 0:
            raise InvalidStrategyInput(
                f"{request.symbol}: days to expiry must be positive, got {dte} "
                f"({request.expiration_date.isoformat()} as of {as_of.isoformat()})"
            )

    # -- Pure calculation --

    def calculate(
        self,
        request: Mapping[str, Any] | StrategyRequest,
        chain: OptionsChain,
        iv_percentile: float | None = None,
        as_of: date | None = None,
    ) -> CalculationResult:
        """Select, price, and model one strategy against ``chain``.

        Raises:
            InvalidStrategyInput: malformed request, non-positive price or DTE.
        """
        request = self.parse_request(request)
        today = as_of or date.today()
        price = chain.underlying_price
        self._validate(request, price, today)
        strategy = request.kind

        try:
            selection, priced = self._build(request, chain, today, relaxed=False)
        except (NoLiquidContracts, StrikeSelectionFailed) as first:
            logger.debug("%s %s: %s; retrying with relaxed moneyness band", request.symbol, strategy, first)
            try:
                selection, priced = self._build(request, chain, today, relaxed=True)
            except NoLiquidContracts as e:
                return CalculationResult.failure(
                    request.symbol, strategy, CalculationStatus.NO_LIQUID_CONTRACTS, str(e), side=e.side,
                )
            except StrikeSelectionFailed as e:
                return CalculationResult.failure(
                    request.symbol, strategy, CalculationStatus.STRIKE_SELECTION_FAILED, str(e),
                )

        return self._assemble(request.symbol, strategy, chain, selection, priced, iv_percentile)

    def calculate_from_strikes(
        self,
        symbol: str,
        strategy_type: StrategyType | str,
        strikes: list[float],
        expiration_date: date | None = None,
        *,
        chain: OptionsChain | None = None,
        premiums: list[float] | None = None,
        back_expiration: date | None = None,
        iv_percentile: float | None = None,
        as_of: date | None = None,
    ) -> CalculationResult:
        """Recalculate a position on strikes the caller picked.

        The strikes must be listed in ``chain`` (fetched from the provider when
        omitted). ``premiums`` replaces the quoted mid of each leg, in leg
        order, e.g. to model actual fills. With one expiration in the chain
        ``expiration_date`` may be omitted.

        Raises:
            InvalidStrategyInput: unknown strategy, bad strike count or
                ordering, bad premiums, or no usable expiration.
        """
        symbol = symbol.strip().upper()
        if not symbol:
            raise InvalidStrategyInput("symbol must not be empty")
        try:
            strategy = StrategyType(strategy_type)
        except ValueError:
            raise InvalidStrategyInput(f"Unknown strategy type: {strategy_type!r}") from None
        today = as_of or date.today()

        if chain is None:
            try:
                chain = self._fetch(symbol, "get_options_chain", symbol)
            except DataUnavailable as e:
                logger.warning("Chain fetch failed for %s: %s", symbol, e)
                return CalculationResult.failure(symbol, strategy, CalculationStatus.DATA_UNAVAILABLE, str(e))
        price = chain.underlying_price
        if price <= 0:
            raise InvalidStrategyInput(f"{symbol}: underlying price must be positive, got {price}")

        if expiration_date is None:
            expirations = chain.expirations()
            if len(expirations) != 1:
                raise InvalidStrategyInput(
                    f"{symbol}: expiration_date is required when the chain lists {len(expirations)} expirations"
                )
            expiration_date = expirations[0]

        try:
            selection = select_custom_strikes(
                strategy, chain.options, strikes, expiration_date, today,
                symbol=symbol, back_expiration=back_expiration, premiums=premiums,
            )
            priced = price_strategy(strategy, selection.legs, price, symbol=symbol)
        except StrikeSelectionFailed as e:
            return CalculationResult.failure(symbol, strategy, CalculationStatus.STRIKE_SELECTION_FAILED, str(e))

        return self._assemble(symbol, strategy, chain, selection, priced, iv_percentile)

    def _assemble(
        self,
        symbol: str,
        strategy: StrategyType,
        chain: OptionsChain,
        selection: StrikeSelection,
        priced: PricedStrategy,
        iv_percentile: float | None,
    ) -> CalculationResult:
        """Probability, expected move and position for selected, priced legs."""
        price = chain.underlying_price
        iv = self._position_iv(selection.legs)
        if iv_percentile is None:
            same_expiry = chain.for_expiration(selection.expiration_date)
            iv_percentile = iv_percentile_from_chain(iv, same_expiry)
            if iv_percentile is None:
                iv_percentile = estimate_iv_percentile(iv)

        probability = compute_probability(
            price, iv, selection.days_to_expiry, selection.legs,
            priced.lower_breakeven, priced.upper_breakeven,
            settings=self.settings.probability,
            evaluation_date=selection.expiration_date,
        )
        position = self._position(symbol, strategy, selection, priced, price, iv, iv_percentile)
        position = position.model_copy(update={"distribution_flag": probability.distribution_flag})

        return CalculationResult(
            symbol=symbol,
            strategy_type=strategy,
            status=CalculationStatus.OK,
            position=position,
            probability=probability,
            expected_move=compute_expected_move(price, iv, selection.days_to_expiry),
            warnings=self._leg_issues(chain, selection.legs),
        )

    def _build(
        self,
        request: StrategyRequest,
        chain: OptionsChain,
        as_of: date,
        relaxed: bool,
    ) -> tuple[StrikeSelection, PricedStrategy]:
        price = chain.underlying_price
        if isinstance(request, DiagonalCalendar):
            expirations = chain.expirations()
        else:
            expirations = [request.expiration_date]
        candidates = {
            exp: filter_contracts(
                chain.for_expiration(exp), price, request.kind,
                settings=self.settings.filter, relaxed=relaxed,
            )
            for exp in expirations
        }
        selection = select_strikes(request, candidates, price, as_of, settings=self.settings.selection)
        priced = price_strategy(request.kind, selection.legs, price, symbol=request.symbol)
        return selection, priced

    def _position_iv(self, legs: list[StrategyLeg]) -> float:
        """Average leg IV in percent, or the configured default when missing."""
        ivs = [leg.implied_volatility for leg in legs if leg.implied_volatility]
        if not ivs:
            return self.settings.engine.default_iv
        return round(sum(ivs) / len(ivs) * 100, 2)

    def _position(
        self,
        symbol: str,
        strategy: StrategyType,
        selection: StrikeSelection,
        priced: PricedStrategy,
        price: float,
        iv: float,
        iv_percentile: float,
    ) -> StrategyPosition:
        return StrategyPosition(
            position_id=uuid.uuid4().hex,
            symbol=symbol,
            strategy_type=strategy,
            legs=selection.legs,
            lower_breakeven=priced.lower_breakeven,
            upper_breakeven=priced.upper_breakeven,
            max_loss=priced.max_loss,
            max_profit=priced.max_profit,
            net_premium=priced.net_premium,
            order_side=priced.order_side,
            implied_volatility=iv,
            iv_percentile=iv_percentile,
            days_to_expiry=selection.days_to_expiry,
            expiration_date=selection.expiration_date,
            underlying_price_at_calculation=price,
            risk_profile=priced.risk_profile,
            collateral_note=priced.collateral_note,
            greeks=priced.greeks,
            selection_trace=selection.trace,
            contract_multiplier=self.settings.engine.contract_multiplier,
            calculated_at=datetime.now(),
        )

    def _leg_issues(self, chain: OptionsChain, legs: list[StrategyLeg]) -> list[ChainIssue]:
        issues: list[ChainIssue] = []
        for leg in legs:
            contract = _find_contract(chain.options, leg)
            if contract is not None:
                issues.extend(validate_contract(contract, chain.underlying_price, self.settings.validation))
        return issues

    # -- Provider boundary --

    @property
    def _provider_name(self) -> str:
        return self.provider.provider_name if self.provider else "none"

    def _fetch(self, symbol: str, method: str, *args):
        """Call a provider method with the fetch timeout; failures -> DataUnavailable."""
        if self.provider is None:
            raise ValueError("OptionsStrategyCalculator requires a provider to fetch market data")
        future = self._io_pool.submit(getattr(self.provider, method), *args)
        try:
            return future.result(timeout=self.fetch_timeout)
        except concurrent.futures.TimeoutError:
            future.cancel()
            raise DataUnavailable(
                self._provider_name, symbol, f"timed out after {self.fetch_timeout:.1f}s",
            ) from None
        except DataUnavailable:
            raise
        except Exception as e:
            raise DataUnavailable(self._provider_name, symbol, str(e)) from e

    def fetch_chain(self, request: StrategyRequest) -> OptionsChain:
        """Chain for ``request``: one expiration, or all of them for diagonals."""
        symbol = request.symbol
        if isinstance(request, DiagonalCalendar) or request.expiration_date is None:
            return self._fetch(symbol, "get_options_chain", symbol)
        quote = self._fetch(symbol, "get_stock_quote", symbol)
        contracts = self._fetch(
            symbol, "get_options_chain_snapshot", symbol, request.expiration_date,
        )
        return OptionsChain(
            symbol=symbol,
            underlying_price=quote.current_price,
            options=contracts,
            as_of=quote.as_of,
        )

    def calculate_for_symbol(
        self,
        request: Mapping[str, Any] | StrategyRequest,
        iv_percentile: float | None = None,
        as_of: date | None = None,
    ) -> CalculationResult:
        """Fetch the chain for ``request`` and calculate.

        Fetch failures and timeouts come back as ``data_unavailable``.
        """
        request = self.parse_request(request)
        try:
            chain = self.fetch_chain(request)
        except DataUnavailable as e:
            logger.warning("Chain fetch failed for %s: %s", request.symbol, e)
            return CalculationResult.failure(
                request.symbol, request.kind, CalculationStatus.DATA_UNAVAILABLE, str(e),
            )
        return self.calculate(request, chain, iv_percentile=iv_percentile, as_of=as_of)

    def calculate_batch(
        self,
        requests: list[Mapping[str, Any] | StrategyRequest],
        as_of: date | None = None,
        max_workers: int | None = None,
    ) -> list[CalculationResult]:
        """Calculate many requests in parallel with bounded concurrency.

        One symbol's failure never aborts the batch; results are returned in
        request order.
        """
        engine = self.settings.engine
        workers = max(1, min(max_workers or engine.batch_max_workers, engine.batch_worker_limit))
        with concurrent.futures.ThreadPoolExecutor(max_workers=workers, thread_name_prefix="strategy-batch") as pool:
            futures = [pool.submit(self._calculate_isolated, req, as_of) for req in requests]
            results = [f.result() for f in futures]

        ok = sum(1 for r in results if r.ok)
        logger.info("Batch complete: %d/%d calculations succeeded", ok, len(results))
        return results

    def _calculate_isolated(
        self,
        request: Mapping[str, Any] | StrategyRequest,
        as_of: date | None,
    ) -> CalculationResult:
        symbol = _symbol_of(request)
        try:
            return self.calculate_for_symbol(request, as_of=as_of)
        except InvalidStrategyInput as e:
            logger.warning("Invalid request for %s: %s", symbol, e)
            return CalculationResult.failure(symbol, None, CalculationStatus.INVALID_STRATEGY_INPUT, str(e))
        except Exception as e:
            logger.warning("Calculation failed for %s: %s", symbol, e)
            return CalculationResult.failure(symbol, None, CalculationStatus.FAILED, str(e))

    # -- Surfaces and expected moves --

    def volatility_surface(self, symbol: str, as_of: date | None = None) -> VolatilitySurfaceData:
        """Surface from the live chain, parametric when the chain is unavailable.

        Raises:
            DataUnavailable: neither the chain nor a stock quote could be fetched.
        """
        symbol = symbol.upper()
        today = as_of or date.today()
        key = ("surface", symbol, today)
        if self.cache is not None:
            cached = self.cache.get(key)
            if cached is not None:
                return cached

        try:
            chain = self._fetch(symbol, "get_options_chain", symbol)
            surface = build_surface_from_chain(chain, as_of=today, settings=self.settings.surface)
        except DataUnavailable as e:
            logger.warning("Chain unavailable for %s, using parametric surface: %s", symbol, e)
            quote = self._fetch(symbol, "get_stock_quote", symbol)
            surface = build_parametric_surface(
                symbol, quote.current_price, as_of=today, settings=self.settings.surface,
            )

        if self.cache is not None:
            self.cache.put(key, surface)
        return surface

    def expected_move(self, symbol: str, iv_pct: float, days_to_expiry: int) -> ExpectedMove:
        quote = self._fetch(symbol, "get_stock_quote", symbol)
        return compute_expected_move(quote.current_price, iv_pct, days_to_expiry)


def _find_contract(contracts: list[OptionContract], leg: StrategyLeg) -> OptionContract | None:
    for c in contracts:
        if (
            c.strike == leg.strike
            and c.contract_type == leg.contract_type
            and c.expiration_date == leg.expiration_date
        ):
            return c
    return None


def _symbol_of(request: Mapping[str, Any] | StrategyRequest) -> str:
    if isinstance(request, Mapping):
        return str(request.get("symbol", "")).upper()
    return request.symbol
