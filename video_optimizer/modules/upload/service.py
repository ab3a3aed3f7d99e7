"""Upload pipeline.

Takes a temporary upload through the naming policy, the transcode decision,
the encoder adapter and storage placement, and returns the stored path.
"""

import contextvars
import logging
import posixpath
from concurrent.futures import ThreadPoolExecutor
from typing import Optional, Sequence, Union

from video_optimizer.core.config import settings
from video_optimizer.core.logging import log_error, log_info, log_warning
from video_optimizer.core.storage import (
    StorageError,
    StorageManager,
    UnsupportedTemporaryURLError,
    Visibility,
    get_storage,
)
from video_optimizer.core.tracing import create_span
from video_optimizer.modules.transcoding.decision import decide
from video_optimizer.modules.transcoding.encoder import EncoderAdapter, FFmpegEncoderAdapter
from video_optimizer.modules.transcoding.schemas import EncodeJob, OptimizationDefaults, Transcode
from video_optimizer.modules.upload.naming import (
    TokenFactory,
    generate_unique_token,
    join_storage_path,
    resolve_stored_name,
    sanitize_filename,
)
from video_optimizer.modules.upload.placement import (
    CopyDirective,
    MoveDirective,
    StoragePlacement,
)
from video_optimizer.modules.upload.schemas import (
    FieldConfig,
    ResolvedFieldConfig,
    SavedFiles,
    StoredArtifact,
    StoredFileInfo,
    UploadContext,
    UploadedFileRef,
)

logger = logging.getLogger(__name__)

FieldState = Union[str, UploadedFileRef]
AnyFieldConfig = Union[FieldConfig, ResolvedFieldConfig]


class UploadServiceError(Exception):
    """Base exception for upload service errors."""

    pass


class UploadRejectedError(UploadServiceError):
    """Raised when an upload's media type is not accepted by the field."""

    pass


class UploadPipeline:
    """Stores uploaded files, transcoding videos on the way."""

    def __init__(
        self,
        storage: Optional[StorageManager] = None,
        encoder: Optional[EncoderAdapter] = None,
        placement: Optional[StoragePlacement] = None,
        defaults: Optional[OptimizationDefaults] = None,
        scratch_directory: Optional[str] = None,
        temporary_url_ttl: Optional[int] = None,
        token_factory: TokenFactory = generate_unique_token,
        max_workers: int = 1,
    ):
        """Initialize pipeline.

        Args:
            storage: Disk registry
            encoder: Encoder adapter, FFmpeg on the scratch disk by default
            placement: Destination writer
            defaults: Optimization defaults, read from settings when omitted
            scratch_directory: Root of per-job scratch directories
            temporary_url_ttl: Lifetime of temporary URLs for private files
            token_factory: Generates stored names when names are not preserved
            max_workers: Files of one batch processed at the same time
        """
        self.storage = storage or get_storage()
        self.encoder = encoder or FFmpegEncoderAdapter(storage=self.storage)
        self.placement = placement or StoragePlacement(self.storage)
        self.defaults = defaults if defaults is not None else OptimizationDefaults.from_settings()
        self.scratch_directory = scratch_directory or settings.SCRATCH_DIRECTORY
        self.temporary_url_ttl = (
            temporary_url_ttl if temporary_url_ttl is not None else settings.TEMPORARY_URL_TTL_SECONDS
        )
        self.token_factory = token_factory
        self.max_workers = max(1, max_workers)

    def _resolve(
        self,
        config: AnyFieldConfig,
        context: Optional[UploadContext] = None,
    ) -> ResolvedFieldConfig:
        if isinstance(config, ResolvedFieldConfig):
            return config
        return config.resolve(context, self.defaults)

    def ensure_accepted(self, media_type: Optional[str], config: AnyFieldConfig) -> None:
        """Raise UploadRejectedError if the field does not accept ``media_type``."""
        if not self._resolve(config).accepts(media_type):
            raise UploadRejectedError(f"File type {media_type or 'unknown'} is not accepted")

    def save_uploaded_file(
        self,
        file: UploadedFileRef,
        config: AnyFieldConfig,
        context: Optional[UploadContext] = None,
    ) -> Optional[str]:
        """Store one uploaded file.

        Args:
            file: Temporary upload
            config: Field configuration
            context: Passed to the field's directory resolver

        Returns:
            Stored path, or None when the temporary file no longer exists

        Raises:
            PlacementError: If the file could not be written to its disk
        """
        artifact = self.store(file, config, context)
        return artifact.path if artifact else None

    def store(
        self,
        file: UploadedFileRef,
        config: AnyFieldConfig,
        context: Optional[UploadContext] = None,
    ) -> Optional[StoredArtifact]:
        """Store one uploaded file and describe the result.

        A failed transcode falls back to storing the original file.
        """
        resolved = self._resolve(config, context)

        with create_span(
            "video_optimizer.save_uploaded_file",
            attributes={
                "disk": resolved.disk,
                "media_type": file.mime_type or "",
                "size": file.size,
            },
        ) as span:
            if not self._source_exists(file):
                log_info(logger, "upload.source_missing", disk=file.disk, path=file.path)
                span.set_attribute("video_optimizer.stored", False)
                return None

            artifact = None
            try:
                artifact = self._place(file, resolved)
            finally:
                self._discard_temporary(file, artifact)

            span.set_attribute("video_optimizer.stored", True)
            span.set_attribute("video_optimizer.transcoded", artifact.transcoded)
            log_info(
                logger,
                "upload.stored",
                disk=artifact.disk,
                path=artifact.path,
                transcoded=artifact.transcoded,
                client_name=file.original_name,
            )
            return artifact

    def _place(self, file: UploadedFileRef, config: ResolvedFieldConfig) -> StoredArtifact:
        decision = decide(file.mime_type, config.policy)

        if isinstance(decision, Transcode):
            job = EncodeJob.create(file.disk, file.path, decision, self.scratch_directory)
            result = self.encoder.encode(job)

            if result.success and result.content:
                filename = resolve_stored_name(
                    file.original_name,
                    config.preserve_filenames,
                    decision.format,
                    self.token_factory,
                )
                path = self.placement.place(
                    result.content,
                    config.disk,
                    join_storage_path(config.directory, filename),
                    config.visibility,
                )
                return StoredArtifact(
                    disk=config.disk,
                    path=path,
                    visibility=config.visibility,
                    transcoded=True,
                    format=decision.format,
                )

            log_error(
                logger,
                "upload.transcode_failed",
                exception=result.error,
                job_id=job.job_id,
                format=decision.format.value,
                path=file.path,
                error=result.error_message or "encoder returned no output",
            )

        filename = resolve_stored_name(
            file.original_name,
            config.preserve_filenames,
            None,
            self.token_factory,
        )
        directive_type = MoveDirective if config.move_files else CopyDirective
        path = self.placement.place(
            directive_type(source_disk=file.disk, source_path=file.path),
            config.disk,
            join_storage_path(config.directory, filename),
            config.visibility,
        )
        return StoredArtifact(disk=config.disk, path=path, visibility=config.visibility)

    def _source_exists(self, file: UploadedFileRef) -> bool:
        # A failed check counts as missing.
        try:
            return self.storage.disk(file.disk).exists(file.path)
        except StorageError as e:
            log_warning(
                logger,
                "upload.existence_check_failed",
                disk=file.disk,
                path=file.path,
                error=str(e),
            )
            return False

    def _discard_temporary(
        self,
        file: UploadedFileRef,
        artifact: Optional[StoredArtifact],
    ) -> None:
        if artifact is not None and (artifact.disk, artifact.path) == (file.disk, file.path):
            return
        try:
            self.storage.disk(file.disk).delete(file.path)
        except StorageError as e:
            log_warning(
                logger,
                "upload.temporary_cleanup_failed",
                disk=file.disk,
                path=file.path,
                error=str(e),
            )

    def save_uploaded_files(
        self,
        files: Union[FieldState, Sequence[FieldState], None],
        config: AnyFieldConfig,
        context: Optional[UploadContext] = None,
    ) -> SavedFiles:
        """Store every file of a field.

        Already-stored paths pass through unchanged and uploads that were not
        stored are dropped.

        Args:
            files: Field state, a single entry or a list of entries
            config: Field configuration
            context: Passed to the field's directory resolver

        Returns:
            Stored paths and the client names of the newly stored files
        """
        resolved = self._resolve(config, context)
        if not resolved.store_files:
            return SavedFiles(state=files)

        if files is None:
            entries: list[FieldState] = []
        elif isinstance(files, (str, UploadedFileRef)):
            entries = [files]
        else:
            entries = list(files)

        results = self._save_all(entries, resolved)

        stored: list[str] = []
        file_names: dict[str, str] = {}
        for entry, path in zip(entries, results):
            if path is None:
                continue
            stored.append(path)
            if isinstance(entry, UploadedFileRef):
                file_names[path] = sanitize_filename(entry.original_name)

        if resolved.multiple:
            return SavedFiles(state=stored, file_names=file_names)
        return SavedFiles(state=stored[0] if stored else None, file_names=file_names)

    def _save_all(
        self,
        entries: list[FieldState],
        config: ResolvedFieldConfig,
    ) -> list[Optional[str]]:
        def save(entry: FieldState) -> Optional[str]:
            if isinstance(entry, str):
                return entry
            return self.save_uploaded_file(entry, config)

        uploads = sum(1 for entry in entries if isinstance(entry, UploadedFileRef))
        if self.max_workers == 1 or uploads < 2:
            return [save(entry) for entry in entries]

        with ThreadPoolExecutor(max_workers=min(self.max_workers, uploads)) as executor:
            futures = [
                executor.submit(contextvars.copy_context().run, save, entry)
                for entry in entries
            ]
            return [future.result() for future in futures]

    def get_uploaded_file(
        self,
        path: str,
        config: AnyFieldConfig,
        stored_file_names: Optional[dict[str, str]] = None,
    ) -> Optional[StoredFileInfo]:
        """Describe a stored file for previews.

        Private files get a temporary URL where the disk supports one.

        Args:
            path: Stored path
            config: Field configuration
            stored_file_names: Stored path to client name map

        Returns:
            File description, or None when the file does not exist
        """
        resolved = self._resolve(config)
        disk = self.storage.disk(resolved.disk)

        if resolved.fetch_file_information:
            try:
                if not disk.exists(path):
                    return None
            except StorageError:
                return None

        url = None
        if resolved.visibility == Visibility.PRIVATE:
            try:
                url = disk.temporary_url(path, self.temporary_url_ttl)
            except UnsupportedTemporaryURLError:
                pass
        if url is None:
            url = disk.url(path)

        name = (stored_file_names or {}).get(path) or posixpath.basename(path)
        if not resolved.fetch_file_information:
            return StoredFileInfo(name=name, size=0, type=None, url=url)

        return StoredFileInfo(
            name=name,
            size=disk.size(path),
            type=disk.mime_type(path),
            url=url,
        )
