import argparse
import logging
import sys

from app.config import get_settings
from app.core.errors import LedgerError
from app.core.logging import setup_logging
from app.services import build_services
from app.storage import build_storage

logger = logging.getLogger(__name__)


def parse_args():
    settings = get_settings()
    parser = argparse.ArgumentParser(description="Delete the oldest weight readings.")
    parser.add_argument(
        "--keep",
        type=int,
        default=settings.READINGS_KEEP_DEFAULT,
        help="Number of most recent readings to keep (default: %(default)s).",
    )
    return parser.parse_args()


def main():
    setup_logging()
    args = parse_args()

    services = build_services(build_storage())
    try:
        removed = services.readings.cleanup(args.keep)
    except LedgerError as exc:
        logger.error("Cleanup failed: %s", exc.message)
        for detail in exc.details:
            logger.error("  %s", detail)
        sys.exit(1)
    print("Removed {} reading(s), kept the latest {}.".format(removed, args.keep))


if __name__ == "__main__":
    main()
