"""Outbox job runner for RxGate.

Each pass heals half-written intake records, backfills outbox events for
approved consultations, then delivers due events to partner webhooks.

Usage:
    python src/server.py                 # Run a pass every OUTBOX_DISPATCH_INTERVAL_SECONDS
    python src/server.py --once          # Run a single pass and exit
    python src/server.py --interval 30   # Override the interval
"""

import argparse
import time

import structlog

logger = structlog.get_logger(__name__)


def _get_domain():
    from consults.domain import consults

    consults.init()
    return consults


def run_pass(domain) -> dict:
    from consults.intake.repair import RepairPendingSubmissions
    from consults.outbox.job import run_outbox_pass

    with domain.domain_context():
        repaired = domain.process(RepairPendingSubmissions(), asynchronous=False)
        summary = run_outbox_pass()
    summary["repaired"] = repaired or 0
    logger.info("Outbox pass finished", **summary)
    return summary


def run(interval_seconds, once=False):
    domain = _get_domain()
    while True:
        try:
            run_pass(domain)
        except Exception:
            # The next pass retries; pending events stay pending
            logger.exception("Outbox pass failed")
        if once:
            return
        time.sleep(interval_seconds)


def main():
    from consults.config import get_config
    from consults.utils.logging import configure_logging

    parser = argparse.ArgumentParser(description="RxGate outbox job runner")
    parser.add_argument("--once", action="store_true", help="Run a single pass and exit")
    parser.add_argument(
        "--interval",
        type=int,
        default=None,
        help="Seconds between passes (default: OUTBOX_DISPATCH_INTERVAL_SECONDS)",
    )
    args = parser.parse_args()

    configure_logging()
    interval = args.interval or get_config().dispatch_interval_seconds
    run(interval, once=args.once)


if __name__ == "__main__":
    main()
