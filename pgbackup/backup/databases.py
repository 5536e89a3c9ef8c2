"""
Database enumeration.

Resolves the list of databases to back up, either from an explicit override
list or from the server catalog via psql.
"""

import re
from typing import List, Optional

from .commands import run_command, CommandError


class EnumerationError(Exception):
    """Raised when the database catalog cannot be queried."""
    pass


CATALOG_QUERY = """
SELECT datname
FROM pg_database
WHERE datallowconn
  AND datistemplate = false
  AND datname NOT IN ('template0','template1')
  AND datname NOT ILIKE 'rdsadmin'
  AND datname NOT ILIKE 'azure_maintenance'
ORDER BY datname;
""".strip()


def parse_database_list(value: str) -> List[str]:
    """
    Split an override list on commas, spaces and newlines.

    Order is preserved; blank entries are dropped.
    """
    return [name.strip() for name in re.split(r'[,\s]+', value) if name.strip()]


class DatabaseEnumerator:
    """
    Lists the databases a run should back up.
    """

    def __init__(
        self,
        host: str,
        port: str,
        user: str,
        password: str,
        override: Optional[str] = None,
        list_dbname: str = 'postgres',
        psql_path: str = 'psql'
    ):
        self.host = host
        self.port = str(port)
        self.user = user
        self.password = password
        self.override = (override or '').strip()
        self.list_dbname = list_dbname
        self.psql_path = psql_path

    @classmethod
    def from_config(cls, config) -> 'DatabaseEnumerator':
        return cls(
            host=config.PGHOST,
            port=config.PGPORT,
            user=config.PGUSER,
            password=config.PGPASSWORD,
            override=config.PGDATABASES,
            list_dbname=config.PG_LIST_DBNAME,
            psql_path=config.PSQL_PATH
        )

    def list_databases(self) -> List[str]:
        """
        Return database names in enumeration order.

        Raises:
            EnumerationError: If the catalog query cannot be executed or a
                name contains '/'
        """
        if self.override:
            return _check_names(parse_database_list(self.override))

        args = [
            '-h', self.host,
            '-p', self.port,
            '-U', self.user,
            '-d', self.list_dbname,
            '-Atc', CATALOG_QUERY,
        ]

        try:
            output = run_command(self.psql_path, args, env={'PGPASSWORD': self.password})
        except CommandError as e:
            raise EnumerationError(f"Failed to list databases: {e}") from e

        return _check_names([line.strip() for line in output.splitlines() if line.strip()])


def _check_names(names: List[str]) -> List[str]:
    invalid = [name for name in names if '/' in name]
    if invalid:
        raise EnumerationError(f"Database names must not contain '/': {', '.join(invalid)}")
    return names
