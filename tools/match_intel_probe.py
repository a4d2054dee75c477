"""Run the unified match intelligence pipeline for one match from the shell.

Usage:
    python -m tools.match_intel_probe "Arsenal" "Chelsea" soccer_epl
    python -m tools.match_intel_probe "Lakers" "Celtics" basketball_nba --odds 1.85 2.05
    python -m tools.match_intel_probe "Arsenal" "Chelsea" soccer_epl --odds 1.75 4.5 3.8 --quick
    python -m tools.match_intel_probe "Arsenal" "Chelsea" soccer_epl --with-db --repeat 3
"""

import argparse
import asyncio
import json
import logging
import sys

sys.path.insert(0, "backend")

from app.models.match_intel import MatchIdentifier, OddsInfo
from app.services.match_intel_service import get_match_intel_service, shutdown_match_intel_service


def _odds(values: list[float] | None) -> OddsInfo | None:
    if not values:
        return None
    if len(values) == 2:
        return OddsInfo(home=values[0], away=values[1])
    return OddsInfo(home=values[0], away=values[1], draw=values[2])


def _summary(data) -> str:
    meta = data.metadata
    lines = [
        f"{data.match.match_name} ({data.match.sport}) cached={data.cached}",
        f"  quality={meta.data_quality} score={meta.quality_score} primary={meta.primary_source}"
        f" latency={meta.total_latency_ms}ms",
        f"  breaker={meta.circuit_breaker_triggered} fallback={meta.fallback_used}",
    ]
    if meta.missing_fields:
        lines.append(f"  missing: {', '.join(meta.missing_fields)}")
    for warning in meta.warnings:
        lines.append(f"  warning: {warning}")
    if data.analysis is not None:
        p = data.analysis.probabilities
        lines.append(
            f"  probabilities: home={p.home} away={p.away} draw={p.draw}"
            f" favored={data.analysis.favored} confidence={data.analysis.confidence}"
        )
        e = data.analysis.edge
        lines.append(f"  edge: {e.direction} {e.percentage} ({e.quality})")
    else:
        lines.append("  no analysis")
    return "\n".join(lines)


async def run(args: argparse.Namespace) -> int:
    import app.database as _db

    if args.with_db:
        await _db.connect_db()
    service = get_match_intel_service()
    match = MatchIdentifier(
        home_team=args.home, away_team=args.away, sport=args.sport, league=args.league,
    )
    odds = _odds(args.odds)
    try:
        if args.quick:
            if odds is None:
                print("--quick needs --odds", file=sys.stderr)
                return 2
            analysis = await service.get_quick_analysis(match, odds)
            print(json.dumps(analysis.model_dump(mode="json", by_alias=True) if analysis else None, indent=2))
            return 0

        for _ in range(max(1, args.repeat)):
            data = await service.get_unified_match_data(
                match, include_odds=not args.no_odds, skip_cache=args.skip_cache, odds=odds,
            )
            if args.json:
                print(json.dumps(data.model_dump(mode="json", by_alias=True), indent=2))
            else:
                print(_summary(data))
        if args.health:
            print(json.dumps(service.health(), indent=2, default=str))
    finally:
        await service.tasks.drain(timeout=5)
        await shutdown_match_intel_service()
        if args.with_db:
            await _db.close_db()
    return 0


def main() -> None:
    parser = argparse.ArgumentParser(description="Probe the unified match intelligence pipeline.")
    parser.add_argument("home")
    parser.add_argument("away")
    parser.add_argument("sport", help="sport key, e.g. soccer_epl, basketball_nba, icehockey_nhl")
    parser.add_argument("--league", default=None)
    parser.add_argument("--odds", type=float, nargs="+", metavar="PRICE",
                        help="decimal odds: HOME AWAY [DRAW]")
    parser.add_argument("--no-odds", action="store_true", help="do not fetch live odds")
    parser.add_argument("--skip-cache", action="store_true")
    parser.add_argument("--quick", action="store_true", help="quick analysis (needs --odds)")
    parser.add_argument("--repeat", type=int, default=1, help="run N times to observe caching")
    parser.add_argument("--with-db", action="store_true", help="connect MongoDB for fallback and snapshots")
    parser.add_argument("--json", action="store_true", help="print the full JSON payload")
    parser.add_argument("--health", action="store_true", help="print breaker and cache state at the end")
    parser.add_argument("-v", "--verbose", action="store_true")
    args = parser.parse_args()

    if args.odds is not None and len(args.odds) not in (2, 3):
        parser.error("--odds takes 2 or 3 prices")
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )
    sys.exit(asyncio.run(run(args)))


if __name__ == "__main__":
    main()
