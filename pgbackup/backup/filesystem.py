"""
Filesystem operations for backup directories.

LocalFilesystem creates run directories, removes expired ones, packages
artifacts into archives and lists what a run produced.
"""

import os
import shutil
from datetime import datetime, timedelta
from pathlib import Path
from typing import List, Optional

from ..errors import BackupError
from .compression import create_archive


class FilesystemError(BackupError):
    """Raised when a directory or file operation fails."""
    pass


class LocalFilesystem:
    """
    Handler for backup directories on the local filesystem.
    """

    def make_dir(self, path, mode: int = 0o775) -> Path:
        """
        Create a directory (and parents) and set its permissions.

        Args:
            path: Directory to create
            mode: Permission bits applied to the directory

        Returns:
            The directory path

        Raises:
            FilesystemError: If the directory cannot be created
        """
        directory = Path(path)
        try:
            directory.mkdir(parents=True, exist_ok=True)
            os.chmod(directory, mode)
        except PermissionError as e:
            raise FilesystemError(f"Permission denied creating {directory}: {e}")
        except OSError as e:
            raise FilesystemError(f"Cannot create directory {directory}: {e}")
        return directory

    def remove_tree(self, path):
        """
        Remove a directory and everything in it.

        Raises:
            FilesystemError: If removal fails
        """
        try:
            shutil.rmtree(path)
        except FileNotFoundError:
            pass
        except PermissionError as e:
            raise FilesystemError(f"Permission denied removing {path}: {e}")
        except OSError as e:
            raise FilesystemError(f"Failed to remove {path}: {e}")

    def remove_file(self, path):
        """
        Remove a single file if it exists.

        Raises:
            FilesystemError: If removal fails
        """
        try:
            Path(path).unlink()
        except FileNotFoundError:
            pass
        except OSError as e:
            raise FilesystemError(f"Failed to remove {path}: {e}")

    def list_children(self, root) -> List[dict]:
        """
        List the direct children of a directory.

        Args:
            root: Directory to list

        Returns:
            List of dicts with 'path', 'is_dir' and 'modified' keys

        Raises:
            FilesystemError: If listing fails
        """
        root_path = Path(root)
        if not root_path.exists():
            return []

        try:
            children = []
            for child in sorted(root_path.iterdir()):
                stat = child.stat()
                children.append({
                    'path': child,
                    'is_dir': child.is_dir(),
                    'modified': datetime.fromtimestamp(stat.st_mtime),
                })
            return children
        except OSError as e:
            raise FilesystemError(f"Failed to list {root_path}: {e}")

    def create_archive(self, source_paths: List[str], output_base: str,
                       compression_format: str = 'tar.gz') -> str:
        """Package files into a compressed archive (see compression.create_archive)."""
        return create_archive(source_paths, output_base, compression_format)

    def listing(self, directory) -> List[dict]:
        """
        Files produced in a run directory.

        Returns:
            List of dicts with 'name' and 'size' keys, sorted by name

        Raises:
            FilesystemError: If the directory cannot be read
        """
        directory = Path(directory)
        if not directory.is_dir():
            return []

        try:
            files = []
            for item in sorted(directory.iterdir()):
                if item.is_file():
                    files.append({'name': item.name, 'size': item.stat().st_size})
            return files
        except OSError as e:
            raise FilesystemError(f"Failed to list {directory}: {e}")

    def purge_stale(self, root, suffix: str, max_age: timedelta,
                    now: Optional[datetime] = None,
                    container_suffix: Optional[str] = None) -> List[Path]:
        """
        Delete files ending with ``suffix`` anywhere under ``root`` that are
        older than ``max_age``.

        When ``container_suffix`` is given, a directory with that suffix left
        empty by the purge is removed as well.

        Returns:
            Paths that were removed

        Raises:
            FilesystemError: If a stale file cannot be removed or listed
        """
        root_path = Path(root)
        if not root_path.exists():
            return []

        now = now or datetime.now()
        removed = []
        try:
            candidates = [path for path in root_path.rglob(f'*{suffix}') if path.is_file()]
        except OSError as e:
            raise FilesystemError(f"Failed to scan {root_path}: {e}")

        for candidate in candidates:
            modified = datetime.fromtimestamp(candidate.stat().st_mtime)
            if now - modified <= max_age:
                continue

            self.remove_file(candidate)
            removed.append(candidate)

            parent = candidate.parent
            if container_suffix and parent.name.endswith(container_suffix) and parent != root_path:
                try:
                    parent.rmdir()
                except OSError:
                    # Still holds recovery files
                    continue
                removed.append(parent)

        return removed
