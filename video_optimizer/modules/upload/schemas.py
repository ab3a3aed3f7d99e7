"""Schemas for upload fields, uploaded files and stored files."""

from dataclasses import dataclass, field
from typing import Any, Mapping, Optional, Protocol

from pydantic import BaseModel, Field

from video_optimizer.core.config import settings
from video_optimizer.core.storage import Visibility
from video_optimizer.modules.transcoding.models import VideoFormat
from video_optimizer.modules.transcoding.schemas import OptimizationDefaults, OptimizationPolicy
from video_optimizer.modules.upload.models import ACCEPTED_VIDEO_TYPES
from video_optimizer.modules.upload.naming import sanitize_filename, split_extension


@dataclass(frozen=True)
class UploadContext:
    """What a directory resolver may look at when a field is saved."""
    field_name: str = ""
    record_key: Optional[str] = None
    attributes: Mapping[str, Any] = field(default_factory=dict)


class DirectoryResolver(Protocol):
    """Computes a field's directory for the record being saved."""

    def __call__(self, context: UploadContext) -> str: ...


@dataclass(frozen=True)
class ResolvedFieldConfig:
    """Field configuration snapshot used by one save operation."""
    directory: str
    disk: str
    visibility: Visibility
    policy: OptimizationPolicy
    move_files: bool = False
    preserve_filenames: bool = False
    accepted_file_types: tuple[str, ...] = ACCEPTED_VIDEO_TYPES
    multiple: bool = False
    fetch_file_information: bool = True
    store_files: bool = True

    def accepts(self, media_type: Optional[str]) -> bool:
        """Check a media type against the accepted types.

        An empty list accepts everything; "video/*" style wildcards match a
        whole category.
        """
        if not self.accepted_file_types:
            return True
        if not media_type:
            return False
        media_type = media_type.strip().lower()
        for accepted in self.accepted_file_types:
            accepted = accepted.strip().lower()
            if accepted == media_type:
                return True
            if accepted.endswith("/*") and media_type.startswith(accepted[:-1]):
                return True
        return False


@dataclass(frozen=True)
class FieldConfig:
    """Declared configuration of an upload field.

    ``optimize`` and ``target_format`` of None inherit the process-wide
    defaults. ``directory_resolver`` takes precedence over ``directory``.
    """
    directory: Optional[str] = None
    directory_resolver: Optional[DirectoryResolver] = None
    disk: Optional[str] = None
    visibility: Visibility = Visibility.PUBLIC
    move_files: bool = False
    preserve_filenames: bool = False
    optimize: Optional[str] = None
    target_format: Optional[str] = None
    accepted_file_types: tuple[str, ...] = ACCEPTED_VIDEO_TYPES
    multiple: bool = False
    fetch_file_information: bool = True
    store_files: bool = True

    def resolve(
        self,
        context: Optional[UploadContext] = None,
        defaults: Optional[OptimizationDefaults] = None,
    ) -> ResolvedFieldConfig:
        """Resolve the configuration once for a save operation.

        Args:
            context: Passed to the directory resolver
            defaults: Optimization defaults, read from settings when omitted

        Returns:
            Immutable snapshot
        """
        if self.directory_resolver is not None:
            directory = self.directory_resolver(context or UploadContext())
        else:
            directory = self.directory

        return ResolvedFieldConfig(
            directory=(directory or "").strip("/"),
            disk=self.disk or settings.DEFAULT_DISK,
            visibility=Visibility(self.visibility or Visibility.PUBLIC),
            policy=OptimizationPolicy.resolve(
                self.optimize,
                self.target_format,
                defaults if defaults is not None else OptimizationDefaults.from_settings(),
            ),
            move_files=self.move_files,
            preserve_filenames=self.preserve_filenames,
            accepted_file_types=tuple(self.accepted_file_types),
            multiple=self.multiple,
            fetch_file_information=self.fetch_file_information,
            store_files=self.store_files,
        )


@dataclass(frozen=True)
class UploadedFileRef:
    """A temporary upload waiting to be stored."""
    original_name: str
    mime_type: str
    size: int
    disk: str
    path: str

    @property
    def extension(self) -> str:
        """Client-supplied extension, without the dot."""
        return split_extension(sanitize_filename(self.original_name))[1]


@dataclass(frozen=True)
class StoredArtifact:
    """A file persisted by the upload pipeline."""
    disk: str
    path: str
    visibility: Visibility
    transcoded: bool = False
    format: Optional[VideoFormat] = None


@dataclass
class SavedFiles:
    """Outcome of saving every file of a field.

    ``state`` is a list for multiple fields and a single path (or None)
    otherwise. ``file_names`` maps stored paths to client names.
    """
    state: Any
    file_names: dict[str, str] = field(default_factory=dict)


class StoredFileInfo(BaseModel):
    """Description of a stored file for previews."""
    name: str
    size: int = 0
    type: Optional[str] = None
    url: str


class StoredFileResponse(BaseModel):
    """One stored upload."""
    path: str
    name: str
    url: Optional[str] = None


class UploadResponse(BaseModel):
    """Schema for upload response."""
    disk: str
    files: list[StoredFileResponse] = Field(default_factory=list)
    skipped: list[str] = Field(default_factory=list, description="Uploads that were not stored")
