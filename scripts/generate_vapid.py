"""Create the VAPID key pair in the configured state directory.

Usage: python scripts/generate_vapid.py [--rotate]

Prints the public key for the browser's applicationServerKey.
Existing keys are kept unless --rotate is given.
"""

import argparse

import structlog

from pushrelay.config import get_settings
from pushrelay.notifications.store import ConfigStore, Database
from pushrelay.notifications.vapid import VapidKeyManager

logger = structlog.get_logger()


def main() -> None:
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[0])
    parser.add_argument(
        "--rotate",
        action="store_true",
        help="replace existing keys (browsers must resubscribe)",
    )
    args = parser.parse_args()

    settings = get_settings()
    db = Database(settings.db_path)
    try:
        keys = VapidKeyManager(ConfigStore(db))
        if args.rotate:
            public_key = keys.rotate_keys().public_key
        else:
            public_key, created = keys.generate_keys()
            logger.info("vapid_keys_ready", created=created, db=str(settings.db_path))
    finally:
        db.close()
    print(public_key)


if __name__ == "__main__":
    main()
