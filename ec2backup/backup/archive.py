"""Local archive creation and S3 upload.

NO try-catch blocks - ProviderError from the upload already names s3://bucket/key.
"""

import logging
import tarfile
from pathlib import Path

from ec2backup.backup.scratch import ScratchFiles
from ec2backup.core.client import CloudClient
from ec2backup.core.errors import SourceNotFoundError, ValidationError
from ec2backup.core.models import ArchiveArtifact

logger = logging.getLogger(__name__)


def classify_source(source: Path) -> str:
    """
    Return "file" or "directory".

    Raises:
        SourceNotFoundError: If the path does not exist
        ValidationError: For anything else (sockets, devices, ...)
    """
    if not source.exists():
        raise SourceNotFoundError(source)
    if source.is_file():
        return "file"
    if source.is_dir():
        return "directory"
    raise ValidationError(f"Invalid source type: {source}")


def create_archive(
    source: Path,
    output_dir: Path,
    stem: str,
    compress: bool = True,
    scratch: ScratchFiles | None = None,
) -> ArchiveArtifact:
    """
    Create a tar archive of a file or a directory's contents.

    A file is stored under its base name. A directory's children are stored at
    the archive root, without the directory itself as a prefix.

    Args:
        source: File or directory to archive
        output_dir: Where the archive is written
        stem: Archive name without extension
        compress: gzip the archive (.tar.gz) or not (.tar)
        scratch: If given, the archive is registered for cleanup before it is written

    Returns:
        ArchiveArtifact describing the local file
    """
    source_type = classify_source(source)
    output_dir.mkdir(parents=True, exist_ok=True)
    suffix, mode = (".tar.gz", "w:gz") if compress else (".tar", "w")
    archive_path = output_dir / f"{stem}{suffix}"
    if scratch is not None:
        scratch.track(archive_path)

    logger.info(f"Creating backup from {source} ({source_type})...")

    with tarfile.open(archive_path, mode) as tar:
        if source_type == "file":
            tar.add(str(source), arcname=source.name)
        else:
            skip = _self_arcname(source, archive_path)
            for child in sorted(source.iterdir()):
                tar.add(str(child), arcname=child.name, filter=lambda info: None if info.name == skip else info)

    artifact = ArchiveArtifact(
        path=archive_path,
        source_type=source_type,
        compressed=compress,
        size=archive_path.stat().st_size,
    )
    logger.info(f"Created archive {archive_path} ({artifact.size} bytes)")
    return artifact


def _self_arcname(source: Path, archive_path: Path) -> str | None:
    """Arcname the archive would get if it is written inside the source tree."""
    try:
        return archive_path.resolve().relative_to(source.resolve()).as_posix()
    except ValueError:
        return None


class ArchiveAndUploadPipeline:
    """Archives the backup source and uploads it to the bucket."""

    def __init__(self, client: CloudClient, output_dir: Path):
        self.client = client
        self.output_dir = Path(output_dir)

    def run(
        self,
        source_path: Path,
        compress: bool,
        bucket: str,
        stem: str,
        scratch: ScratchFiles | None = None,
    ) -> ArchiveArtifact:
        """
        Archive source_path and upload it as s3://bucket/<archive file name>.

        Raises:
            SourceNotFoundError: Before any archiving if the source is missing
            ProviderError: If the upload fails
        """
        artifact = create_archive(Path(source_path), self.output_dir, stem, compress, scratch)
        key = artifact.path.name

        logger.info(f"Uploading to s3://{bucket}/{key} ...")
        self.client.upload_file(artifact.path, bucket, key)

        artifact.bucket = bucket
        artifact.key = key
        logger.info(f"Backup uploaded successfully to {artifact.s3_uri}")
        return artifact
