"""Run one soft cap sweep over all open time entries.

Usage:
    python scripts/run_soft_cap_sweep.py --mongodb-url mongodb://localhost:27017
"""
import argparse
import asyncio
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent))

from motor.motor_asyncio import AsyncIOMotorClient

from app.config import settings
from app.logging_utils import setup_logging
from app.services.time_clock_service import TimeClockService


async def run_sweep(mongodb_url: str, db_name: str) -> int:
    """Sweep once and print the report. Returns the process exit code."""
    client = AsyncIOMotorClient(mongodb_url, tz_aware=True)
    try:
        service = TimeClockService(client[db_name])
        report = await service.sweep_open_entries()
    finally:
        client.close()

    print(f"Processed {report.processed} entries, flagged {report.flagged}")
    for error in report.errors:
        print(f"  error: {error}")
    return 1 if report.errors else 0


def main():
    parser = argparse.ArgumentParser(description="Flag open entries over the soft cap")
    parser.add_argument("--mongodb-url", default=settings.mongodb_url)
    parser.add_argument("--db-name", default=settings.mongodb_db_name)
    args = parser.parse_args()

    setup_logging(settings.log_level, json_output=settings.log_json)
    sys.exit(asyncio.run(run_sweep(args.mongodb_url, args.db_name)))


if __name__ == "__main__":
    main()
