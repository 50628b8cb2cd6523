"""
Batch duplicate-identity report for one series.

    python scripts/suggest_duplicates.py <series_id> [--limit N] [--batch-size N] [--names]
"""
import argparse
import asyncio
import logging
import os
import sys

from dotenv import load_dotenv

script_dir = os.path.dirname(os.path.abspath(__file__))
project_root = os.path.dirname(script_dir)
sys.path.append(project_root)

env_path = os.path.join(project_root, ".env")
if os.path.exists(env_path):
    load_dotenv(env_path)

from attendly.database import AsyncSessionLocal  # noqa: E402
from attendly.services.sanitize import SeriesSanitizeService  # noqa: E402


async def report(
    series_id: str,
    limit: int = 24,
    batch_size: int = 500,
    show_names: bool = False,
    session_factory=AsyncSessionLocal,
) -> int:
    async with session_factory() as session:
        service = SeriesSanitizeService(session, batch_size=batch_size)
        series = await service.get_series(series_id)
        if series is None:
            print(f"[!] Series {series_id} not found.")
            return 1

        suggestions = await service.suggestions(series_id, limit=limit)
        print("\n" + "=" * 100)
        print(f" Duplicate suggestions for '{series.name}' ({len(suggestions)} shown)")
        print("=" * 100)
        print(f" {'Email A':<32} | {'Email B':<32} | {'Dist':<4} | {'Signals':<22} | Keep")
        print("-" * 100)
        if not suggestions:
            print(f" {'No likely duplicates.':<95}")
        for s in suggestions:
            signals = ",".join(sorted(s.signals))
            print(
                f" {s.email_a:<32} | {s.email_b:<32} | {s.distance:<4} | {signals:<22} | "
                f"{s.default_canonical}"
            )

        if show_names:
            conflicts = await service.name_conflicts(series_id)
            print("\n Name conflicts")
            print("-" * 100)
            if not conflicts:
                print(" None.")
            for conflict in conflicts:
                names = ", ".join(f"{name} ({count})" for name, count in conflict.names)
                print(f" {conflict.email:<40} {names}")

        print("=" * 100 + "\n")
        return 0


if __name__ == "__main__":
    # Keep the report readable
    logging.basicConfig(level=logging.CRITICAL)
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)

    parser = argparse.ArgumentParser(description="Suggest duplicate attendee emails in a series")
    parser.add_argument("series_id")
    parser.add_argument("--limit", type=int, default=24)
    parser.add_argument("--batch-size", type=int, default=500)
    parser.add_argument("--names", action="store_true", help="Also list name conflicts")
    args = parser.parse_args()

    try:
        sys.exit(asyncio.run(report(args.series_id, args.limit, args.batch_size, args.names)))
    except KeyboardInterrupt:
        pass
