"""Calculate strategy positions, vol surfaces, and expected moves from a quote file.

Usage (after pip install):
    strategy-calc position --chain quotes.csv --symbol AAPL --strategy long_strangle --expiration 2026-04-17
    strategy-calc position --chain quotes.csv --symbol SPY --strategy iron_condor --expiration 2026-04-17 --wing-width 10
    strategy-calc position --chain quotes.csv --symbol AAPL --strategy long_strangle --expiration 2026-04-17 --strikes 170,180
    strategy-calc surface --chain quotes.csv --symbol AAPL
    strategy-calc move --price 100 --iv 20 --dte 30
"""

from __future__ import annotations

import argparse
import logging
from datetime import date

from tabulate import tabulate

from strategy_calculator.data.exceptions import DataUnavailable, InvalidStrategyInput
from strategy_calculator.data.frame_provider import FrameChainProvider
from strategy_calculator.features.expected_move import compute_expected_move
from strategy_calculator.models.result import CalculationResult
from strategy_calculator.models.strategy import StrategyType, Unbounded
from strategy_calculator.service.calculator import OptionsStrategyCalculator


def _bound(value) -> str:
    if value is None:
        return "-"
    if isinstance(value, Unbounded):
        return "unbounded"
    return f"{value:.2f}"


def _print_result(result: CalculationResult) -> None:
    if not result.ok:
        print(f"{result.symbol}: {result.status.value.upper()} - {result.error.message if result.error else ''}")
        return

    pos = result.position
    print(f"--- {pos.symbol} {pos.strategy_type.value} ({pos.expiration_date}, {pos.days_to_expiry} DTE) ---")
    rows = []
    for leg, sel in zip(pos.legs, pos.selection_trace.legs):
        rows.append({
            "Role": sel.role,
            "Action": leg.action.value.upper(),
            "Qty": leg.quantity,
            "Type": leg.contract_type.value,
            "Strike": f"{leg.strike:g}",
            "Target": f"{sel.target_strike:.2f}",
            "Rule": sel.rule.value,
            "Premium": f"{leg.premium:.2f}",
            "Expiry": leg.expiration_date.isoformat(),
        })
    print(tabulate(rows, headers="keys", tablefmt="simple", stralign="right"))

    prob = result.probability
    metrics = [
        ("Net premium", f"{pos.order_side.value} {pos.net_premium:.2f}"),
        ("Max loss", _bound(pos.max_loss)),
        ("Max profit", _bound(pos.max_profit)),
        ("Breakevens", f"{_bound(pos.lower_breakeven)} / {_bound(pos.upper_breakeven)}"),
        ("IV / IV pctl", f"{pos.implied_volatility:.1f}% / {pos.iv_percentile:.0f}"),
        ("Prob. of profit", f"{prob.probability_of_profit:.1%}" if prob else "-"),
        ("Distribution", pos.distribution_flag.value),
        ("Collateral", pos.collateral_note),
    ]
    if result.expected_move:
        weekly = result.expected_move.weekly
        metrics.append(("Weekly move", f"+/-{weekly.move:.2f} ({weekly.low:.2f} - {weekly.high:.2f})"))
    print()
    print(tabulate(metrics, tablefmt="plain"))

    for issue in result.warnings:
        print(f"  [{issue.severity.value}] {issue.contract_type} {issue.strike:g}: {issue.message}")


_OTM_PCT_KEYS = {
    "long_strangle": "otm_pct",
    "short_strangle": "otm_pct",
    "iron_condor": "short_otm_pct",
    "diagonal_calendar": "short_otm_pct",
}
_WING_WIDTH_STRATEGIES = ("iron_condor", "butterfly_spread")


def _float_list(text: str) -> list[float]:
    try:
        return [float(part) for part in text.split(",") if part.strip()]
    except ValueError:
        raise argparse.ArgumentTypeError(f"expected comma-separated numbers, got {text!r}") from None


def _position_request(args: argparse.Namespace) -> dict | None:
    """Request mapping for the flags given, or None after printing why they don't fit."""
    request = {
        "strategy_type": args.strategy,
        "symbol": args.symbol,
        "expiration_date": args.expiration,
    }
    if args.otm_pct is not None:
        key = _OTM_PCT_KEYS.get(args.strategy)
        if key is None:
            print(f"ERROR: --otm-pct does not apply to {args.strategy}")
            return None
        request[key] = args.otm_pct
    if args.wing_width is not None:
        if args.strategy not in _WING_WIDTH_STRATEGIES:
            print(f"ERROR: --wing-width does not apply to {args.strategy}")
            return None
        request["wing_width"] = args.wing_width
    return request


def _cmd_position(args: argparse.Namespace) -> int:
    if args.strikes is None:
        if args.premiums is not None:
            print("ERROR: --premiums needs --strikes")
            return 2
        request = _position_request(args)
        if request is None:
            return 2
    elif args.otm_pct is not None or args.wing_width is not None:
        print("ERROR: --otm-pct and --wing-width do not apply with --strikes")
        return 2

    provider = FrameChainProvider.from_csv(args.chain)
    with OptionsStrategyCalculator(provider=provider) as calc:
        try:
            if args.strikes is None:
                result = calc.calculate_for_symbol(request, as_of=args.as_of)
            else:
                result = calc.calculate_from_strikes(
                    args.symbol, args.strategy, args.strikes, args.expiration,
                    premiums=args.premiums, back_expiration=args.back_expiration, as_of=args.as_of,
                )
        except InvalidStrategyInput as e:
            print(f"ERROR: {e}")
            return 2
    _print_result(result)
    return 0 if result.ok else 1


def _cmd_surface(args: argparse.Namespace) -> int:
    provider = FrameChainProvider.from_csv(args.chain)
    with OptionsStrategyCalculator(provider=provider) as calc:
        try:
            surface = calc.volatility_surface(args.symbol, as_of=args.as_of)
        except DataUnavailable as e:
            print(f"ERROR: {e}")
            return 1

    stats = surface.surface_stats
    print(f"--- {surface.symbol} vol surface @ {surface.current_price:.2f} ---")
    print(f"Points: {len(surface.points)} ({surface.chain_point_count} chain, "
          f"{surface.parametric_point_count} parametric)")
    print(tabulate([{
        "Avg IV": f"{stats.avg_iv:.1f}",
        "Min IV": f"{stats.min_iv:.1f}",
        "Max IV": f"{stats.max_iv:.1f}",
        "Put skew": f"{stats.iv_skew:+.1f}",
        "Term": stats.term_structure.value,
    }], headers="keys", tablefmt="simple", stralign="right"))

    atm_rows = []
    for exp in surface.expirations:
        slice_ = [p for p in surface.points if p.expiration == exp]
        atm = min(slice_, key=lambda p: abs(p.moneyness - 1))
        atm_rows.append({
            "Expiration": exp.isoformat(),
            "DTE": atm.days_to_exp,
            "ATM strike": f"{atm.strike:g}",
            "ATM IV": f"{atm.implied_vol:.1f}",
            "Source": atm.source.value,
        })
    print()
    print(tabulate(atm_rows, headers="keys", tablefmt="simple", stralign="right"))
    return 0


def _cmd_move(args: argparse.Namespace) -> int:
    try:
        move = compute_expected_move(args.price, args.iv, args.dte)
    except InvalidStrategyInput as e:
        print(f"ERROR: {e}")
        return 2
    rows = [
        {
            "Horizon": f"{band.days}d",
            "Move": f"{band.move:.2f}",
            "Move %": f"{band.move_pct:.2f}",
            "Low": f"{band.low:.2f}",
            "High": f"{band.high:.2f}",
        }
        for band in (move.daily, move.weekly, move.to_expiry)
    ]
    print(tabulate(rows, headers="keys", tablefmt="simple", stralign="right"))
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Options strategy calculator")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    sub = parser.add_subparsers(dest="command", required=True)

    pos = sub.add_parser("position", help="Select strikes and price a strategy")
    pos.add_argument("--chain", required=True, help="CSV quote table")
    pos.add_argument("--symbol", required=True)
    pos.add_argument("--strategy", required=True, choices=[s.value for s in StrategyType])
    pos.add_argument("--expiration", type=date.fromisoformat, default=None,
                     help="Expiration YYYY-MM-DD (not needed for diagonal_calendar)")
    pos.add_argument("--otm-pct", type=float, default=None, help="Override OTM offset (0.05 = 5%%)")
    pos.add_argument("--wing-width", type=float, default=None, help="Wing width in dollars")
    pos.add_argument("--strikes", type=_float_list, default=None,
                     help="Use these listed strikes instead of selecting, comma-separated in leg order")
    pos.add_argument("--premiums", type=_float_list, default=None,
                     help="Per-leg premiums overriding quoted mids (needs --strikes)")
    pos.add_argument("--back-expiration", type=date.fromisoformat, default=None,
                     help="Back-month expiration for a diagonal with --strikes")
    pos.add_argument("--as-of", type=date.fromisoformat, default=None, help="Valuation date (default: today)")
    pos.set_defaults(func=_cmd_position)

    surf = sub.add_parser("surface", help="Build a volatility surface")
    surf.add_argument("--chain", required=True, help="CSV quote table")
    surf.add_argument("--symbol", required=True)
    surf.add_argument("--as-of", type=date.fromisoformat, default=None)
    surf.set_defaults(func=_cmd_surface)

    move = sub.add_parser("move", help="Expected 1-day / 1-week / to-expiry moves")
    move.add_argument("--price", type=float, required=True)
    move.add_argument("--iv", type=float, required=True, help="Annualized IV in percent")
    move.add_argument("--dte", type=int, default=7)
    move.set_defaults(func=_cmd_move)
    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )
    return args.func(args)


if __name__ == "__main__":
    raise SystemExit(main())
