"""
Encrypted archive creation via 7-Zip.

Supports two formats:
- 7z: LZMA2 with encrypted headers (-mhe=on)
- zip: AES-256 encrypted zip (-mem=AES256)
"""

import os

from .commands import run_command, CommandError


class ArchiveError(Exception):
    """Raised when archive creation fails."""
    pass


# format -> (extension, content type, encryption switch)
FORMAT_MAP = {
    '7z': ('7z', 'application/x-7z-compressed', '-mhe=on'),
    'zip': ('zip', 'application/zip', '-mem=AES256'),
}


def _format_entry(archive_format: str):
    if archive_format not in FORMAT_MAP:
        raise ValueError(
            f"Invalid archive format: {archive_format}. "
            f"Valid options: {list(FORMAT_MAP.keys())}"
        )
    return FORMAT_MAP[archive_format]


def archive_extension(archive_format: str) -> str:
    """Return the file extension (without dot) for a format."""
    return _format_entry(archive_format)[0]


def archive_content_type(archive_format: str) -> str:
    """Return the upload Content-Type for a format."""
    return _format_entry(archive_format)[1]


def archive_filename(date_str: str, archive_format: str) -> str:
    """Format: {YYYY-MM-DD}.{ext}"""
    return f"{date_str}.{archive_extension(archive_format)}"


class SevenZipArchiver:
    """
    Creates password-protected, maximally compressed archives.

    Note: the password is passed to 7z on its command line and is visible in
    the process list while the archive is being written.
    """

    def __init__(self, password: str, archive_format: str = '7z', seven_z_path: str = '7z'):
        _format_entry(archive_format)
        self.password = password
        self.archive_format = archive_format
        self.seven_z_path = seven_z_path

    @classmethod
    def from_config(cls, config) -> 'SevenZipArchiver':
        return cls(
            password=config.BACKUP_PASSWORD,
            archive_format=config.ARCHIVE_FORMAT,
            seven_z_path=config.SEVEN_Z_PATH
        )

    @property
    def extension(self) -> str:
        return archive_extension(self.archive_format)

    @property
    def content_type(self) -> str:
        return archive_content_type(self.archive_format)

    def create(self, input_path: str, archive_path: str) -> str:
        """
        Archive input_path into archive_path.

        Returns:
            Path to the created archive

        Raises:
            ArchiveError: If 7z fails
        """
        if not os.path.exists(input_path):
            raise ArchiveError(f"Input file not found: {input_path}")

        _, _, encryption_switch = FORMAT_MAP[self.archive_format]
        args = [
            'a',
            f'-t{self.archive_format}',
            '-mx=9',
            encryption_switch,
            f'-p{self.password}',
            archive_path,
            input_path,
        ]

        try:
            run_command(self.seven_z_path, args)
        except CommandError as e:
            # Clean up partial archive on failure
            if os.path.exists(archive_path):
                try:
                    os.remove(archive_path)
                except OSError:
                    pass
            message = str(e)
            if self.password:
                message = message.replace(self.password, '***')
            raise ArchiveError(message) from e

        return archive_path


def get_archive_size(archive_path: str) -> int:
    """
    Get the size of an archive file in bytes.

    Raises:
        ArchiveError: If file doesn't exist or cannot be accessed
    """
    try:
        return os.path.getsize(archive_path)
    except FileNotFoundError:
        raise ArchiveError(f"Archive not found: {archive_path}")
    except OSError as e:
        raise ArchiveError(f"Failed to get archive size: {e}")
