import os
import logging
from logging.handlers import RotatingFileHandler


def configure_logging(level='INFO', log_dir=None):
    """Configure application logging"""

    log_level = logging.getLevelName(level) if isinstance(level, str) else level
    if not isinstance(log_level, int):
        log_level = logging.INFO

    handlers = []

    # Console handler
    console_handler = logging.StreamHandler()
    console_handler.setLevel(log_level)
    console_formatter = logging.Formatter(
        '[%(asctime)s] %(levelname)s in %(module)s: %(message)s'
    )
    console_handler.setFormatter(console_formatter)
    handlers.append(console_handler)

    # File handler
    if log_dir:
        os.makedirs(log_dir, exist_ok=True)
        file_handler = RotatingFileHandler(
            os.path.join(log_dir, 'pgbackup.log'),
            maxBytes=10485760,  # 10MB
            backupCount=10
        )
        file_handler.setLevel(log_level)
        file_formatter = logging.Formatter(
            '[%(asctime)s] %(levelname)s [%(name)s.%(funcName)s:%(lineno)d] %(message)s'
        )
        file_handler.setFormatter(file_formatter)
        handlers.append(file_handler)

    logging.basicConfig(level=log_level, handlers=handlers, force=True)

    # boto3/botocore are chatty at DEBUG
    logging.getLogger('botocore').setLevel(max(log_level, logging.INFO))
    logging.getLogger('urllib3').setLevel(max(log_level, logging.INFO))

    logging.getLogger(__name__).info(f"Logging configured (level: {logging.getLevelName(log_level)})")


def create_orchestrator(config, run_started_at=None):
    """Backup orchestrator factory"""
    from pgbackup.backup import (
        BackupOrchestrator,
        DatabaseEnumerator,
        PgDump,
        SevenZipArchiver,
        S3Storage,
    )

    storage = S3Storage.from_config(config)

    return BackupOrchestrator(
        enumerator=DatabaseEnumerator.from_config(config),
        storage=storage,
        dumper=PgDump.from_config(config),
        archiver=SevenZipArchiver.from_config(config),
        bucket=config.R2_BUCKET,
        prefix=config.R2_PREFIX,
        retention_days=config.BACKUP_RETENTION_DAYS,
        concurrency=config.CONCURRENCY,
        temp_dir=config.TEMP_DIR,
        run_started_at=run_started_at
    )
