"""
Artifact pipeline - turns one dump into one archive.

Workflow:
1. Dump into ``<payload>.in_progress`` inside a scratch directory, then
   rename to ``<payload>``
2. Write the SHA-256 sidecar of the plaintext payload
3. Encrypt the payload (optional), then shred the plaintext (optional)
4. Archive payload and sidecar as ``<artifact>.tar.gz`` in the run directory
5. Remove the scratch directory

Each stage failure is reported as a failed ArtifactResult instead of being
raised, so the caller can carry on with the next artifact.
"""

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Optional

from ..utils.encryption import EncryptionError, SecureDeleteError
from ..utils.integrity import IntegrityError, read_sidecar, write_sidecar
from ..utils.presentation import format_size
from .compression import ArchiveError, get_archive_size
from .dumps import DumpError
from .filesystem import FilesystemError

logger = logging.getLogger(__name__)

IN_PROGRESS_SUFFIX = '.in_progress'
SCRATCH_SUFFIX = '.scratch'

STAGE_DUMP = 'dump'
STAGE_HASH = 'hash'
STAGE_ENCRYPT = 'encrypt'
STAGE_ARCHIVE = 'archive'

STATUS_SUCCESS = 'success'
STATUS_FAILED = 'failed'

STAGE_ERRORS = (DumpError, IntegrityError, EncryptionError, ArchiveError, FilesystemError)


@dataclass
class ArtifactResult:
    """Outcome of one pipeline run."""

    name: str
    status: str
    archive_path: Optional[Path] = None
    stage: Optional[str] = None
    error: Optional[str] = None
    scratch_dir: Optional[Path] = None

    @property
    def succeeded(self) -> bool:
        return self.status == STATUS_SUCCESS

    def describe(self) -> str:
        if self.succeeded:
            return f"{self.name}: OK ({self.archive_path.name})"
        return f"{self.name}: FAILED at {self.stage} stage - {self.error}"


class ArtifactPipeline:
    """
    Runs dump, hash, encrypt and archive for a single artifact.
    """

    def __init__(self, config, encryptor, shredder, filesystem):
        """
        Initialize the pipeline.

        Args:
            config: BackupConfig (encryption, shredding and archive format settings)
            encryptor: Encryption provider with ``encrypt(path, recipient)``
            shredder: Secure delete provider with ``shred(path)``
            filesystem: Filesystem provider
        """
        self.config = config
        self.encryptor = encryptor
        self.shredder = shredder
        self.filesystem = filesystem

    def run(self, artifact_name: str, dump_operation: Callable[[str], None],
            payload_name: str, destination_dir) -> ArtifactResult:
        """
        Produce ``<destination_dir>/<artifact_name>.<archive format>``.

        Args:
            artifact_name: Archive base name (e.g. 'globals', 'app_schema')
            dump_operation: Callable writing the dump to the path it is given
            payload_name: File name of the dump inside the archive (e.g. 'app.sql')
            destination_dir: Run directory receiving the archive

        Returns:
            ArtifactResult describing success or the failing stage
        """
        destination = Path(destination_dir)
        scratch = destination / f".{artifact_name}{SCRATCH_SUFFIX}"
        stage = STAGE_DUMP

        try:
            self.filesystem.remove_tree(scratch)
            self.filesystem.make_dir(scratch, 0o700)

            payload = self._dump(dump_operation, scratch / payload_name)

            stage = STAGE_HASH
            logger.info("Hashing backup file...")
            sidecar = write_sidecar(payload)
            logger.info(f"{read_sidecar(sidecar)}  {payload.name}")

            if self.config.encrypt_backup_files:
                stage = STAGE_ENCRYPT
                payload = self._encrypt(payload)

            stage = STAGE_ARCHIVE
            archive_path = self._archive(artifact_name, payload, sidecar, destination)

        except STAGE_ERRORS as e:
            return self._fail(artifact_name, stage, e, scratch)

        self._cleanup(scratch)
        return ArtifactResult(name=artifact_name, status=STATUS_SUCCESS, archive_path=archive_path)

    def _dump(self, dump_operation: Callable[[str], None], payload: Path) -> Path:
        partial = payload.with_name(payload.name + IN_PROGRESS_SUFFIX)

        dump_operation(str(partial))

        if not partial.is_file():
            raise DumpError(f"Dump produced no output file: {partial.name}")

        try:
            os.replace(partial, payload)
        except OSError as e:
            raise DumpError(f"Failed to finalize dump {payload.name}: {e}")

        logger.info(f"Database dumped in {payload.name} ({format_size(payload.stat().st_size)})")
        return payload

    def _encrypt(self, payload: Path) -> Path:
        encrypted = Path(self.encryptor.encrypt(payload, self.config.gpg_key_id))

        # Never drop the plaintext before the encrypted copy exists
        if not encrypted.is_file() or encrypted.stat().st_size == 0:
            raise EncryptionError(f"Encrypted file missing or empty: {encrypted.name}")

        if self.config.shred_clear_backup_files and payload.exists():
            try:
                self.shredder.shred(payload)
            except SecureDeleteError as e:
                logger.warning(f"Secure delete of {payload.name} failed, archiving the encrypted copy anyway: {e}")

        return encrypted

    def _archive(self, artifact_name: str, payload: Path, sidecar: Path, destination: Path) -> Path:
        archive_path = Path(self.filesystem.create_archive(
            [str(payload), str(sidecar)],
            str(destination / artifact_name),
            self.config.archive_format
        ))

        size = get_archive_size(str(archive_path))
        logger.info(f"Archive created: {archive_path.name} ({format_size(size)})")
        return archive_path

    def _fail(self, artifact_name: str, stage: str, error: Exception, scratch: Path) -> ArtifactResult:
        logger.error(f"[!!ERROR!!] {artifact_name}: {stage} failed: {error}")

        kept_scratch = None
        if stage == STAGE_DUMP:
            # A partial dump is useless, drop it
            self._cleanup(scratch)
        elif scratch.exists():
            kept_scratch = scratch
            logger.error(f"Intermediate files kept for recovery in {scratch}")

        return ArtifactResult(
            name=artifact_name,
            status=STATUS_FAILED,
            stage=stage,
            error=str(error),
            scratch_dir=kept_scratch,
        )

    def _cleanup(self, scratch: Path):
        try:
            self.filesystem.remove_tree(scratch)
        except FilesystemError as e:
            logger.warning(f"Failed to cleanup scratch directory {scratch}: {e}")
