"""Encoder adapter.

Stages an upload into a job-local scratch directory, runs the encoder on the
staged copy and reads back the output. The scratch directory is removed on
every exit path, including when the encoder raises or the call is abandoned.
"""

import logging
import time
from abc import ABC, abstractmethod
from contextlib import closing, contextmanager
from dataclasses import dataclass
from typing import Iterator, Optional

from video_optimizer.core.config import settings
from video_optimizer.core.logging import log_info, log_warning
from video_optimizer.core.storage import (
    StorageBackend,
    StorageError,
    StorageManager,
    Visibility,
    get_storage,
)
from video_optimizer.core.tracing import create_span, record_exception
from video_optimizer.modules.transcoding.ffmpeg import FFmpegEncoder
from video_optimizer.modules.transcoding.schemas import EncodeJob

logger = logging.getLogger(__name__)


class EncodeError(Exception):
    """Raised when staging or encoding an upload fails."""

    pass


@dataclass
class EncodeResult:
    """Result of an encode attempt."""
    success: bool
    content: Optional[bytes] = None
    error: Optional[EncodeError] = None
    duration_seconds: float = 0.0

    @property
    def error_message(self) -> Optional[str]:
        return str(self.error) if self.error else None


class EncoderAdapter(ABC):
    """Capability interface for anything that can run an :class:`EncodeJob`."""

    @abstractmethod
    def encode(self, job: EncodeJob) -> EncodeResult:
        """Run the job. Failures are returned, never raised."""
        pass


class FFmpegEncoderAdapter(EncoderAdapter):
    """Runs encode jobs with FFmpeg on a local scratch disk."""

    def __init__(
        self,
        storage: Optional[StorageManager] = None,
        encoder: Optional[FFmpegEncoder] = None,
        scratch_disk: Optional[str] = None,
    ):
        """Initialize adapter.

        Args:
            storage: Disk registry, the default manager when omitted
            encoder: FFmpeg wrapper
            scratch_disk: Name of a local disk used for staging
        """
        self.storage = storage or get_storage()
        self.encoder = encoder or FFmpegEncoder()
        self.scratch_disk = scratch_disk or settings.SCRATCH_DISK

    @contextmanager
    def scratch_workspace(self, job: EncodeJob) -> Iterator[StorageBackend]:
        """Yield the scratch disk and remove the job's files afterwards."""
        scratch = self.storage.disk(self.scratch_disk)
        try:
            yield scratch
        finally:
            self._cleanup(scratch, job)

    def encode(self, job: EncodeJob) -> EncodeResult:
        started = time.monotonic()

        with create_span(
            "video_optimizer.encode",
            attributes={"job_id": job.job_id, "format": job.format.value},
        ):
            try:
                with self.scratch_workspace(job) as scratch:
                    self._stage(scratch, job)
                    video = self.encoder.open(scratch.path(job.scratch_input_path))
                    video.export(
                        job.format,
                        job.parameters,
                        scratch.path(job.scratch_output_path),
                    )
                    content = scratch.get(job.scratch_output_path)
            except Exception as e:
                error = e if isinstance(e, EncodeError) else EncodeError(
                    f"Transcoding {job.source_path} to {job.format.value} failed: {e}"
                )
                if error is not e:
                    error.__cause__ = e
                record_exception(error)
                return EncodeResult(
                    success=False,
                    error=error,
                    duration_seconds=time.monotonic() - started,
                )

        if not content:
            return EncodeResult(
                success=False,
                error=EncodeError(f"Transcoding {job.source_path} produced an empty file"),
                duration_seconds=time.monotonic() - started,
            )

        duration = time.monotonic() - started
        log_info(
            logger,
            "transcode.completed",
            job_id=job.job_id,
            format=job.format.value,
            output_bytes=len(content),
            duration_seconds=round(duration, 3),
        )
        return EncodeResult(success=True, content=content, duration_seconds=duration)

    def _stage(self, scratch: StorageBackend, job: EncodeJob) -> None:
        """Copy the source into the scratch directory.

        Encoders need a local path, so sources on remote disks are always
        copied first.
        """
        source = self.storage.disk(job.source_disk)
        with closing(source.open_stream(job.source_path)) as stream:
            scratch.put(job.scratch_input_path, stream, Visibility.PRIVATE)

    def _cleanup(self, scratch: StorageBackend, job: EncodeJob) -> None:
        for key in (job.scratch_input_path, job.scratch_output_path):
            try:
                scratch.delete(key)
            except StorageError as e:
                log_warning(logger, "transcode.cleanup_failed", job_id=job.job_id, key=key, error=str(e))
        try:
            scratch.delete_directory(job.scratch_directory)
        except StorageError as e:
            log_warning(
                logger,
                "transcode.cleanup_failed",
                job_id=job.job_id,
                key=job.scratch_directory,
                error=str(e),
            )
