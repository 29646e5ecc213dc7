"""Local archive and upload."""

from ec2backup.backup.archive import ArchiveAndUploadPipeline
from ec2backup.backup.scratch import ScratchFiles, scratch_files

__all__ = ["ArchiveAndUploadPipeline", "ScratchFiles", "scratch_files"]
