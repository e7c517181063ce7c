"""Hold expiry sweeper for the checkout domain.

Marks every lapsed hold as expired, once or on a fixed interval. Stock
availability never waits for this: lapsed holds already stop counting the
moment they expire. The sweep keeps hold states tidy for ledger reads.

Usage:
    python src/sweeper.py                  # Sweep every 300 seconds
    python src/sweeper.py --once           # Sweep once and exit
    python src/sweeper.py --interval 60    # Sweep every minute
"""

import argparse
import time

import structlog

logger = structlog.get_logger(__name__)

DEFAULT_INTERVAL_SECONDS = 300


def _get_domain():
    from checkout.domain import checkout

    checkout.init()
    return checkout


def run_once(domain) -> int:
    from checkout.ledger.expiry import sweep_expired_holds

    with domain.domain_context():
        return sweep_expired_holds()


def run(domain, interval: int) -> None:
    logger.info("Hold sweeper started", interval_seconds=interval)
    while True:
        try:
            run_once(domain)
        except Exception as exc:  # noqa: BLE001
            logger.error("Hold sweep failed", error=str(exc), exc_info=True)
        time.sleep(interval)


def main():
    parser = argparse.ArgumentParser(description="Checkout hold expiry sweeper")
    parser.add_argument("--once", action="store_true", help="Sweep once and exit")
    parser.add_argument(
        "--interval",
        type=int,
        default=DEFAULT_INTERVAL_SECONDS,
        help=f"Seconds between sweeps (default: {DEFAULT_INTERVAL_SECONDS})",
    )
    args = parser.parse_args()

    domain = _get_domain()
    if args.once:
        expired = run_once(domain)
        print(f"Expired {expired} hold(s).")
        return

    try:
        run(domain, args.interval)
    except KeyboardInterrupt:
        logger.info("Hold sweeper stopped")


if __name__ == "__main__":
    main()
