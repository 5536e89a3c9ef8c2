"""
pg_dump adapter.

Produces a single custom-format (-Fc) dump file per database.
"""

import os

from .commands import run_command, CommandError


class DumpError(Exception):
    """Raised when pg_dump fails."""
    pass


def dump_filename(database: str, date_str: str) -> str:
    """Format: {database}.{YYYY-MM-DD}.dump"""
    return f"{database}.{date_str}.dump"


class PgDump:
    """
    Runs pg_dump against one database at a time.
    """

    def __init__(self, host: str, port: str, user: str, password: str, pg_dump_path: str = 'pg_dump'):
        self.host = host
        self.port = str(port)
        self.user = user
        self.password = password
        self.pg_dump_path = pg_dump_path

    @classmethod
    def from_config(cls, config) -> 'PgDump':
        return cls(
            host=config.PGHOST,
            port=config.PGPORT,
            user=config.PGUSER,
            password=config.PGPASSWORD,
            pg_dump_path=config.PG_DUMP_PATH
        )

    def dump(self, database: str, output_path: str) -> str:
        """
        Dump a database to output_path.

        Returns:
            Path to the dump file

        Raises:
            DumpError: If pg_dump fails or produces no file
        """
        args = [
            '-h', self.host,
            '-p', self.port,
            '-U', self.user,
            '-d', database,
            '-Fc',
            '-f', output_path,
        ]

        try:
            run_command(self.pg_dump_path, args, env={'PGPASSWORD': self.password})
        except CommandError as e:
            raise DumpError(str(e)) from e

        if not os.path.exists(output_path):
            raise DumpError(f"pg_dump reported success but {output_path} was not created")

        return output_path
