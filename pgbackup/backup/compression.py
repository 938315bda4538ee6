"""
Archive creation for backup artifacts.

Supports compressed tar formats:
- tar.gz: Gzip compressed tar (default)
- tar.bz2: Bzip2 compressed tar
- tar.xz: LZMA compressed tar
"""

import os
import tarfile
from pathlib import Path
from typing import List

from ..errors import BackupError


class ArchiveError(BackupError):
    """Raised when archive creation fails."""
    pass


MODE_MAP = {
    'tar.gz': 'w:gz',
    'tar.bz2': 'w:bz2',
    'tar.xz': 'w:xz',
}


def create_archive(
    source_paths: List[str],
    output_path: str,
    compression_format: str = 'tar.gz'
) -> str:
    """
    Create a compressed tar archive from source files.

    The archive is written under a temporary ``.in_progress`` name and
    renamed when complete, so a present archive is always a whole one.

    Args:
        source_paths: List of file paths to include in archive
        output_path: Path where archive should be created (without extension)
        compression_format: Format to use ('tar.gz', 'tar.bz2', 'tar.xz')

    Returns:
        Full path to the created archive file

    Raises:
        ArchiveError: If archive creation fails
        ValueError: If compression_format is invalid
    """
    if not source_paths:
        raise ArchiveError("No source paths provided")

    if compression_format not in MODE_MAP:
        raise ValueError(
            f"Invalid compression format: {compression_format}. "
            f"Valid options: {list(MODE_MAP.keys())}"
        )

    archive_path = f"{output_path}.{compression_format}"
    partial_path = f"{archive_path}.in_progress"

    try:
        with tarfile.open(partial_path, MODE_MAP[compression_format]) as tar:
            for source_path in source_paths:
                source = Path(source_path)

                if not source.is_file():
                    raise ArchiveError(f"Path does not exist: {source_path}")

                # Store by basename so archives extract flat
                tar.add(source, arcname=source.name, recursive=False)

        os.replace(partial_path, archive_path)
        return archive_path
    except (OSError, tarfile.TarError, ArchiveError) as e:
        if os.path.exists(partial_path):
            os.remove(partial_path)
        if isinstance(e, ArchiveError):
            raise
        raise ArchiveError(f"Failed to create archive: {e}")


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
