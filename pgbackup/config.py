import os
import tempfile


class ConfigError(Exception):
    """Raised when a required setting is missing or invalid."""
    pass


REQUIRED_SETTINGS = [
    'PGHOST',
    'PGUSER',
    'PGPASSWORD',
    'R2_ACCOUNT_ID',
    'R2_ACCESS_KEY_ID',
    'R2_SECRET_ACCESS_KEY',
    'R2_BUCKET',
    'BACKUP_PASSWORD',
]


def _default_concurrency() -> int:
    return max(2, os.cpu_count() or 4)


class Config:
    """Backup configuration read from environment variables"""

    def __init__(self, environ=None):
        """
        Load configuration.

        Args:
            environ: Mapping to read settings from (default: os.environ)

        Raises:
            ConfigError: If a required setting is missing or a value is invalid
        """
        env = os.environ if environ is None else environ

        for key in REQUIRED_SETTINGS:
            if not env.get(key):
                raise ConfigError(f"Missing required env: {key}")

        # PostgreSQL
        self.PGHOST = env['PGHOST']
        self.PGPORT = env.get('PGPORT') or '5432'
        self.PGUSER = env['PGUSER']
        self.PGPASSWORD = env['PGPASSWORD']
        self.PG_DUMP_PATH = env.get('PG_DUMP_PATH') or 'pg_dump'
        self.PSQL_PATH = env.get('PSQL_PATH') or 'psql'
        self.PG_LIST_DBNAME = env.get('PG_LIST_DBNAME') or 'postgres'
        self.PGDATABASES = (env.get('PGDATABASES') or '').strip()

        # Object storage (Cloudflare R2 or any S3-compatible endpoint)
        self.R2_ACCOUNT_ID = env['R2_ACCOUNT_ID']
        self.R2_ACCESS_KEY_ID = env['R2_ACCESS_KEY_ID']
        self.R2_SECRET_ACCESS_KEY = env['R2_SECRET_ACCESS_KEY']
        self.R2_BUCKET = env['R2_BUCKET']
        self.R2_ENDPOINT = env.get('R2_ENDPOINT') or f"https://{self.R2_ACCOUNT_ID}.r2.cloudflarestorage.com"
        self.R2_FORCE_PATH_STYLE = (env.get('R2_FORCE_PATH_STYLE') or 'false').lower() == 'true'
        self.R2_REGION = env.get('R2_REGION') or 'auto'
        self.R2_PREFIX = env.get('R2_PREFIX') or 'db-backups/'

        # Archive
        self.SEVEN_Z_PATH = env.get('SEVEN_Z_PATH') or '7z'
        self.BACKUP_PASSWORD = env['BACKUP_PASSWORD']
        self.ARCHIVE_FORMAT = 'zip' if (env.get('ARCHIVE_FORMAT') or '7z').lower() == 'zip' else '7z'

        # Retention / parallelism
        self.BACKUP_RETENTION_DAYS = self._int(env, 'BACKUP_RETENTION_DAYS', 7)
        if self.BACKUP_RETENTION_DAYS < 0:
            raise ConfigError("BACKUP_RETENTION_DAYS must not be negative")

        self.CONCURRENCY = self._int(env, 'CONCURRENCY', _default_concurrency())
        if self.CONCURRENCY < 1:
            raise ConfigError("CONCURRENCY must be at least 1")

        # Runtime
        self.TEMP_DIR = env.get('TEMP_DIR') or tempfile.gettempdir()
        self.BACKUP_SCHEDULE = (env.get('BACKUP_SCHEDULE') or '').strip() or None
        self.LOG_LEVEL = (env.get('LOG_LEVEL') or 'INFO').upper()
        self.LOG_DIR = env.get('LOG_DIR') or None

    @staticmethod
    def _int(env, key: str, default: int) -> int:
        value = env.get(key)
        if value is None or value.strip() == '':
            return default
        try:
            return int(value)
        except ValueError:
            raise ConfigError(f"{key} must be an integer, got {value!r}")

    def __repr__(self):
        return f'<Config host={self.PGHOST} bucket={self.R2_BUCKET} format={self.ARCHIVE_FORMAT}>'
