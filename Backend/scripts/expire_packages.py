#!/usr/bin/env python3
"""
Expire Package Activations Script

Runs one package expiry sweep: every Confirmed activation whose expiry date
has passed becomes Expired. Use this from cron when the in-app daily sweep
is disabled (EXPIRY_SWEEP_ENABLED=false).

Usage:
    cd Backend
    python scripts/expire_packages.py

    # Only report how many activations are due:
    python scripts/expire_packages.py --dry-run

Requirements:
    - Database connection (DATABASE_URL env var)
"""

import argparse
import asyncio
import logging
import os
import sys

# Add parent directory to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from dotenv import load_dotenv
load_dotenv()

from floatbook.core.db import AsyncSessionLocal, engine
from floatbook.packages import count_expirable
from floatbook.scheduler import run_expiry_sweep

logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(levelname)s - %(message)s',
    datefmt='%Y-%m-%d %H:%M:%S'
)
logger = logging.getLogger(__name__)


async def run(dry_run: bool) -> int:
    try:
        if dry_run:
            async with AsyncSessionLocal() as session:
                due = await count_expirable(session)
            logger.info(f"{due} package activation(s) are due for expiry (dry run)")
            return 0

        expired = await run_expiry_sweep()
        if expired is None:
            logger.info("Another instance is running the sweep; nothing done")
        return 0
    finally:
        await engine.dispose()


def main():
    parser = argparse.ArgumentParser(description="Expire package activations past their expiry date")
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Only count activations that would be expired"
    )
    args = parser.parse_args()

    try:
        sys.exit(asyncio.run(run(dry_run=args.dry_run)))
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
        sys.exit(130)
    except Exception as e:
        logger.error(f"Fatal error: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
