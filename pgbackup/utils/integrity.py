"""
Integrity sidecars for dump payloads.

The digest is written in ``sha256sum`` format next to the payload so it can
be checked with ``sha256sum -c`` once the archive is extracted (and, for
encrypted backups, decrypted).
"""

from pathlib import Path

from cryptography.hazmat.primitives import hashes

from ..errors import BackupError

CHUNK_SIZE = 1024 * 1024
SIDECAR_SUFFIX = '.sha256'


class IntegrityError(BackupError):
    """Raised when a digest cannot be computed or written."""
    pass


def sha256_file(path) -> str:
    """
    Compute the SHA-256 digest of a file.

    Args:
        path: File to hash

    Returns:
        Lowercase hex digest

    Raises:
        IntegrityError: If the file cannot be read
    """
    digest = hashes.Hash(hashes.SHA256())
    try:
        with open(path, 'rb') as f:
            for chunk in iter(lambda: f.read(CHUNK_SIZE), b''):
                digest.update(chunk)
    except OSError as e:
        raise IntegrityError(f"Failed to hash {path}: {e}")

    return digest.finalize().hex()


def write_sidecar(payload_path) -> Path:
    """
    Hash a payload and write ``<payload>.sha256`` beside it.

    Returns:
        Path of the sidecar file

    Raises:
        IntegrityError: If hashing or writing fails
    """
    payload = Path(payload_path)
    sidecar = payload.with_name(payload.name + SIDECAR_SUFFIX)
    checksum = sha256_file(payload)

    try:
        sidecar.write_text(f"{checksum}  {payload.name}\n")
    except OSError as e:
        raise IntegrityError(f"Failed to write hash file {sidecar}: {e}")

    return sidecar


def read_sidecar(sidecar_path) -> str:
    """Return the digest recorded in a sidecar file."""
    try:
        content = Path(sidecar_path).read_text().strip()
    except OSError as e:
        raise IntegrityError(f"Failed to read hash file {sidecar_path}: {e}")

    if not content:
        raise IntegrityError(f"Hash file is empty: {sidecar_path}")
    return content.split()[0]
