"""
Public-key encryption and secure deletion of backup payloads.

Backups are encrypted for a recipient key with GnuPG, so the machine that
runs the backups never needs the private key. Only encryption is supported.
"""

import logging
import os
import subprocess
from pathlib import Path
from typing import List, Optional

from ..errors import BackupError

logger = logging.getLogger(__name__)

ENCRYPTED_SUFFIX = '.gpg'
IN_PROGRESS_SUFFIX = '.in_progress'


class EncryptionError(BackupError):
    """Raised when a payload cannot be encrypted."""
    pass


class SecureDeleteError(EncryptionError):
    """Raised when the clear-text copy of an encrypted payload cannot be shredded."""
    pass


def _run(command: List[str], error_class, action: str):
    try:
        result = subprocess.run(command, capture_output=True, text=True)
    except FileNotFoundError:
        raise error_class(f"{command[0]} not found; cannot {action}")
    except OSError as e:
        raise error_class(f"Failed to run {command[0]}: {e}")

    if result.returncode != 0:
        details = (result.stderr or '').strip() or f"exit code {result.returncode}"
        raise error_class(f"Failed to {action}: {details}")


class GpgEncryptor:
    """
    Encrypts files with ``gpg`` for a single recipient.

    The ciphertext is written to ``<file>.gpg.in_progress`` and renamed to
    ``<file>.gpg`` once gpg exits successfully.
    """

    def __init__(self, binary: str = 'gpg', extra_args: Optional[List[str]] = None):
        self.binary = binary
        self.extra_args = extra_args or []

    def encrypt(self, path, recipient: Optional[str]) -> Path:
        """
        Encrypt a file for ``recipient``.

        Args:
            path: File to encrypt
            recipient: Key ID, fingerprint or e-mail of the recipient

        Returns:
            Path of the encrypted file

        Raises:
            EncryptionError: If no recipient is configured or gpg fails
        """
        source = Path(path)
        if not recipient:
            raise EncryptionError("No GPG key configured (GPG_KEY_ID is empty)")
        if not source.is_file():
            raise EncryptionError(f"File to encrypt not found: {source}")

        target = source.with_name(source.name + ENCRYPTED_SUFFIX)
        partial = target.with_name(target.name + IN_PROGRESS_SUFFIX)

        command = [
            self.binary, '--batch', '--yes',
            *self.extra_args,
            '--recipient', recipient,
            '--output', str(partial),
            '--encrypt', str(source),
        ]

        logger.info(f"Encrypting {source.name}...")
        try:
            _run(command, EncryptionError, f"encrypt {source.name}")
            os.replace(partial, target)
        except OSError as e:
            raise EncryptionError(f"Failed to finalize encrypted file {target}: {e}")
        finally:
            if partial.exists():
                partial.unlink()

        return target


class ShredSecureDelete:
    """Overwrites a file several times with ``shred`` before unlinking it."""

    def __init__(self, passes: int = 5, binary: str = 'shred'):
        self.passes = passes
        self.binary = binary

    def shred(self, path):
        """
        Overwrite and remove a file.

        Raises:
            SecureDeleteError: If shred fails or the file is still present
        """
        target = Path(path)
        logger.info(f"Deleting {target.name}")
        _run([self.binary, '-z', '-u', '-n', str(self.passes), str(target)],
             SecureDeleteError, f"shred {target.name}")

        if target.exists():
            raise SecureDeleteError(f"{target} still exists after shred")
