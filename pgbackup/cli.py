"""
Process entry point.

Exit codes:
    0  all databases backed up
    1  run failed (enumeration error or one or more pipeline failures)
    2  required configuration missing or invalid
    3  no databases to back up
"""

import logging
import sys

from dotenv import load_dotenv

from pgbackup import configure_logging, create_orchestrator
from pgbackup.config import Config, ConfigError
from pgbackup.backup.errors import EmptyTargetSet

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_RUN_FAILED = 1
EXIT_CONFIG = 2
EXIT_NO_TARGETS = 3


def run_once(config) -> int:
    """Run a single backup and map its outcome to an exit code."""
    try:
        create_orchestrator(config).run()
    except EmptyTargetSet as e:
        logger.error(str(e))
        return EXIT_NO_TARGETS
    except Exception as e:
        logger.error(f"Backup failed: {e}")
        return EXIT_RUN_FAILED
    return EXIT_OK


def main(environ=None) -> int:
    load_dotenv()

    try:
        config = Config(environ)
    except ConfigError as e:
        configure_logging()
        logger.error(str(e))
        return EXIT_CONFIG

    configure_logging(config.LOG_LEVEL, config.LOG_DIR)

    if config.BACKUP_SCHEDULE:
        from pgbackup.scheduler import init_scheduler, start_scheduler

        try:
            init_scheduler(config)
        except ValueError as e:
            logger.error(f"Invalid BACKUP_SCHEDULE: {e}")
            return EXIT_CONFIG

        start_scheduler()
        return EXIT_OK

    return run_once(config)


if __name__ == '__main__':
    sys.exit(main())
