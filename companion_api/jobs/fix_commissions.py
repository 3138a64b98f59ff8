"""
Distribute missing referral commissions for recent payments.

    python -m companion_api.jobs.fix_commissions --limit 100
"""
import argparse
import asyncio
import logging

from companion_api.core.config import LOG_LEVEL, RECONCILIATION_SCAN_LIMIT
from companion_api.core.reconciliation import reconcile_missing_commissions
from companion_api.db.session import SessionLocal

logger = logging.getLogger(__name__)

def positive_int(value: str) -> int:
    number = int(value)
    if number < 1:
        raise argparse.ArgumentTypeError(f"must be a positive integer, got {value}")
    return number

def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description=__doc__.strip().splitlines()[0])
    parser.add_argument("--limit", type=positive_int, default=RECONCILIATION_SCAN_LIMIT,
                        help="number of most recent paid payments to scan")
    args = parser.parse_args(argv)

    logging.basicConfig(level=LOG_LEVEL, format="%(asctime)s %(levelname)s [%(name)s] %(message)s")

    db = SessionLocal()
    try:
        stats = asyncio.run(reconcile_missing_commissions(db, limit=args.limit))
    finally:
        db.close()

    logger.info(f"Total scanned: {stats.scanned}")
    logger.info(f"Already had commission / skipped: {stats.skipped}")
    logger.info(f"Fixed / credited: {stats.fixed} {stats.fixed_ids}")
    logger.info(f"Errors: {stats.errors}")
    return 1 if stats.errors else 0

if __name__ == "__main__":
    raise SystemExit(main())
