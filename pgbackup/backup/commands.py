"""
External command runner shared by the pg_dump, psql and 7z adapters.
"""

import logging
import os
import subprocess
from typing import Dict, List, Optional

logger = logging.getLogger(__name__)


class CommandError(Exception):
    """
    Raised when an external command cannot be started or exits non-zero.

    Attributes:
        command: Executable that was run
        returncode: Exit status (None if the command never started)
        stderr: Captured diagnostic output
    """

    def __init__(self, command: str, message: str, returncode: Optional[int] = None, stderr: str = ''):
        self.command = command
        self.returncode = returncode
        self.stderr = stderr
        super().__init__(message)


def run_command(command: str, args: List[str], env: Optional[Dict[str, str]] = None) -> str:
    """
    Run a command to completion and return its stdout.

    Args:
        command: Executable name or path
        args: Command arguments
        env: Extra environment variables for the child process

    Returns:
        Captured stdout

    Raises:
        CommandError: If the command is missing or exits non-zero
    """
    child_env = None
    if env:
        child_env = {**os.environ, **env}

    try:
        completed = subprocess.run(
            [command, *args],
            stdin=subprocess.DEVNULL,
            capture_output=True,
            text=True,
            env=child_env
        )
    except OSError as e:
        raise CommandError(command, f"Failed to start {command}: {e}")

    stderr = (completed.stderr or '').strip()

    if completed.returncode != 0:
        raise CommandError(
            command,
            f"{command} exited {completed.returncode}: {stderr}",
            returncode=completed.returncode,
            stderr=stderr
        )

    if stderr:
        logger.debug(f"{command} stderr: {stderr}")

    return completed.stdout or ''
