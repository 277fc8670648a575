"""voypath CLI 入口：服务启动、数据库迁移、航班查询、行程导出"""

from __future__ import annotations

import argparse
import json
import sys
from typing import Optional, Sequence

from dotenv import load_dotenv

load_dotenv()  # 自动加载 .env 文件


def _format_flights(result: dict) -> str:
    lines: list[str] = []
    flights = result.get("flights", [])
    lines.append(f"✈️  {len(flights)} flights (source: {result.get('source', '?')})")
    lines.append("=" * 50)
    for flight in flights:
        marker = "⭐ " if flight.get("matches_schedule") else "   "
        stops = "direct" if not flight.get("transfers") else f"{flight['transfers']} transfer(s)"
        lines.append(
            f"{marker}{flight['airline']} {flight['flight_number']}  "
            f"{flight['departure'] or '--:--'} -> {flight['arrival'] or '--:--'}  "
            f"{flight['duration'] or '?'}  {stops}  {flight['price']:,} {flight['currency']}"
        )
    links = result.get("links", {})
    if links:
        lines.append("-" * 50)
        for name, url in links.items():
            lines.append(f"🔗 {name}: {url}")
    return "\n".join(lines)


def _cmd_serve(args: argparse.Namespace) -> int:
    import uvicorn

    uvicorn.run("voypath.api.main:app", host=args.host, port=args.port, reload=args.reload)
    return 0


def _cmd_migrate(args: argparse.Namespace) -> int:
    from voypath.persistence.migrate import format_report, run_migrations

    print(format_report(run_migrations(args.db or "", dry_run=args.dry_run)))
    return 0


def _cmd_flights(args: argparse.Namespace) -> int:
    from voypath.adapters.flights import FlightSearchParams, TimePreferences
    from voypath.config.settings import resolve_default_currency
    from voypath.services.flight_service import search_flights
    from voypath.shared.exceptions import ToolError

    params = FlightSearchParams(
        origin=args.origin,
        destination=args.destination,
        depart_date=args.depart_date,
        return_date=args.return_date,
        currency=args.currency or resolve_default_currency(),
    )
    preferences = TimePreferences(departure_time=args.departure_time, arrival_time=args.arrival_time)
    try:
        result = search_flights(params, preferences)
    except ToolError as exc:
        print(f"❌ {exc}", file=sys.stderr)
        return 1
    if args.json:
        print(json.dumps(result, ensure_ascii=False, indent=2))
    else:
        print(_format_flights(result))
    return 0


def _cmd_export(args: argparse.Namespace) -> int:
    from voypath.application.context import make_app_context
    from voypath.config.settings import resolve_default_currency
    from voypath.domain.exceptions import DomainError
    from voypath.services.export_formatter import export_trip_markdown

    ctx = make_app_context(args.db or None)
    try:
        content = export_trip_markdown(
            ctx=ctx,
            trip_id=args.trip_id,
            user_id=args.user,
            currency=resolve_default_currency(),
        )
    except DomainError as exc:
        print(f"❌ {exc}", file=sys.stderr)
        return 1
    if args.output:
        with open(args.output, "w", encoding="utf-8") as f:
            f.write(content)
        print(f"--- exported to {args.output} ---")
    else:
        print(content, end="")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="voypath", description="VoyPath travel planning backend")
    sub = parser.add_subparsers(dest="command", required=True)

    serve = sub.add_parser("serve", help="run the HTTP API")
    serve.add_argument("--host", default="127.0.0.1")
    serve.add_argument("--port", type=int, default=8000)
    serve.add_argument("--reload", action="store_true")
    serve.set_defaults(func=_cmd_serve)

    migrate = sub.add_parser("migrate", help="apply database migrations")
    migrate.add_argument("--db", default="", help="SQLite path (default: VOYPATH_DB_PATH)")
    migrate.add_argument("--dry-run", action="store_true", help="list pending migrations without applying them")
    migrate.set_defaults(func=_cmd_migrate)

    flights = sub.add_parser("flights", help="search flight prices")
    flights.add_argument("origin")
    flights.add_argument("destination")
    flights.add_argument("depart_date")
    flights.add_argument("--return-date", default=None)
    flights.add_argument("--currency", default=None)
    flights.add_argument("--departure-time", default=None)
    flights.add_argument("--arrival-time", default=None)
    flights.add_argument("--json", action="store_true")
    flights.set_defaults(func=_cmd_flights)

    export = sub.add_parser("export", help="export a trip itinerary as markdown")
    export.add_argument("trip_id")
    export.add_argument("--user", required=True, help="member user id")
    export.add_argument("--db", default="")
    export.add_argument("--output", default=None)
    export.set_defaults(func=_cmd_export)
    return parser


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
