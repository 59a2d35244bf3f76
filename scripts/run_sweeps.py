from __future__ import annotations

import argparse
import logging
import time

from programmes.config import get_settings
from programmes.logging_config import setup_logging
from programmes.services.sweeps import run_sweeps

logger = logging.getLogger("programmes.sweeps")


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Expire stale pending updates and purge old rejected assignments.")
    parser.add_argument(
        "--interval",
        type=int,
        default=None,
        help="Repeat every N seconds instead of running once (0 uses SWEEP_INTERVAL_SECONDS).",
    )
    args = parser.parse_args(argv)

    settings = get_settings()
    setup_logging(settings.log_level)

    if args.interval is None:
        report = run_sweeps()
        print(f"expired={report.expired} skipped={report.skipped} rejected_purged={report.rejected_purged}")
        return 0

    interval = args.interval or settings.sweep_interval_seconds
    while True:
        try:
            run_sweeps()
        except Exception:
            logger.exception("sweep_run_failed")
        time.sleep(interval)


if __name__ == "__main__":
    raise SystemExit(main())
