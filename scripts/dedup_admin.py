#!/usr/bin/env python3
"""Inspect and maintain a job dedup index from the command line."""

from __future__ import annotations

import argparse
import asyncio
from dataclasses import asdict
from datetime import date, datetime, time, timezone
import json
from typing import Any

from jobdedup.core.telemetry import configure_logging
from jobdedup.services.engine import DedupService, get_dedup_service


def _day_bounds_ms(start: date, end: date) -> tuple[int, int]:
    start_at = datetime.combine(start, time.min, tzinfo=timezone.utc)
    end_at = datetime.combine(end, time.max, tzinfo=timezone.utc)
    return int(start_at.timestamp() * 1000), int(end_at.timestamp() * 1000)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Maintain the job dedup index.")
    commands = parser.add_subparsers(dest="command", required=True)

    commands.add_parser("stats", help="Print index sizes and today's counters")
    commands.add_parser("cleanup", help="Drop band entries whose fingerprint has expired")

    clear = commands.add_parser("clear", help="Remove indexed postings")
    scope = clear.add_mutually_exclusive_group(required=True)
    scope.add_argument("--all", action="store_true", help="Delete every key in the dedup namespace")
    scope.add_argument("--start", type=date.fromisoformat, help="First UTC day to clear (YYYY-MM-DD)")
    clear.add_argument("--end", type=date.fromisoformat, help="Last UTC day to clear (YYYY-MM-DD)")

    remove = commands.add_parser("remove", help="Remove postings by id")
    remove.add_argument("ids", nargs="+", help="Posting ids to remove")
    return parser


async def run(args: argparse.Namespace, service: DedupService) -> dict[str, Any]:
    if args.command == "stats":
        stats = await service.get_stats()
        return asdict(stats)
    if args.command == "cleanup":
        return asdict(await service.cleanup_expired_bands())
    if args.command == "clear":
        if args.all:
            return {"cleared_all": True, "deleted_keys": await service.clear_all()}
        end = args.end or args.start
        if end < args.start:
            raise ValueError("--end must not be before --start")
        start_ms, end_ms = _day_bounds_ms(args.start, end)
        return asdict(await service.clear_by_date_range(start_ms, end_ms))
    if args.command == "remove":
        removed = [job_id for job_id in args.ids if await service.remove_job(job_id)]
        return {"removed": removed, "requested": len(args.ids)}
    raise ValueError(f"unknown command: {args.command}")


async def _main(args: argparse.Namespace) -> dict[str, Any]:
    service = get_dedup_service()
    try:
        return await run(args, service)
    finally:
        await service.close()


def main() -> None:
    parser = build_parser()
    args = parser.parse_args()
    configure_logging()
    try:
        result = asyncio.run(_main(args))
    except ValueError as exc:
        parser.error(str(exc))
    print(json.dumps(result, indent=2, sort_keys=True, default=str))


if __name__ == "__main__":
    main()
