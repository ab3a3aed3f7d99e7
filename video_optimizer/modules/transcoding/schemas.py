"""Schemas for transcoding decisions and jobs."""

import posixpath
import uuid
from dataclasses import dataclass, field
from typing import Any, Optional, Union

from pydantic import BaseModel, ConfigDict, field_validator

from video_optimizer.core.config import settings
from video_optimizer.modules.transcoding.models import (
    DEFAULT_FORMAT,
    DEFAULT_QUALITY,
    QualityLevel,
    VideoFormat,
)


def _blank(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


class OptimizationDefaults(BaseModel):
    """Process-wide optimization defaults, read once from settings."""
    model_config = ConfigDict(frozen=True)

    quality_level: Optional[str] = None
    target_format: Optional[str] = None

    @classmethod
    def from_settings(cls) -> "OptimizationDefaults":
        return cls(
            quality_level=settings.VIDEO_OPTIMIZER_OPTIMIZE,
            target_format=settings.VIDEO_OPTIMIZER_FORMAT,
        )


class OptimizationPolicy(BaseModel):
    """Quality level and target container for one field.

    Unrecognised values never fail validation: an unknown level means the
    medium level and an unknown container means webm.
    """
    model_config = ConfigDict(frozen=True)

    quality_level: Optional[QualityLevel] = None
    target_format: Optional[VideoFormat] = None

    @field_validator("quality_level", mode="before")
    @classmethod
    def coerce_quality_level(cls, value: Any) -> Optional[QualityLevel]:
        if _blank(value):
            return None
        if isinstance(value, QualityLevel):
            return value
        try:
            return QualityLevel(str(value).strip().lower())
        except ValueError:
            return DEFAULT_QUALITY

    @field_validator("target_format", mode="before")
    @classmethod
    def coerce_target_format(cls, value: Any) -> Optional[VideoFormat]:
        if _blank(value):
            return None
        if isinstance(value, VideoFormat):
            return value
        try:
            return VideoFormat(str(value).strip().lower().lstrip("."))
        except ValueError:
            return DEFAULT_FORMAT

    @property
    def is_empty(self) -> bool:
        return self.quality_level is None and self.target_format is None

    @classmethod
    def resolve(
        cls,
        optimize: Optional[str],
        video_format: Optional[str],
        defaults: Optional[OptimizationDefaults] = None,
    ) -> "OptimizationPolicy":
        """Merge field-level overrides with the process-wide defaults.

        Args:
            optimize: Field quality level, None to inherit the default
            video_format: Field target container, None to inherit the default
            defaults: Defaults snapshot, no defaults when omitted

        Returns:
            Resolved policy
        """
        defaults = defaults or OptimizationDefaults()
        return cls(
            quality_level=optimize if optimize is not None else defaults.quality_level,
            target_format=video_format if video_format is not None else defaults.target_format,
        )


@dataclass(frozen=True)
class Skip:
    """Store the file as uploaded."""
    reason: str = ""


@dataclass(frozen=True)
class Transcode:
    """Re-encode the file into ``format`` with encoder ``parameters``."""
    format: VideoFormat
    parameters: tuple[str, ...]


TranscodeDecision = Union[Skip, Transcode]


@dataclass(frozen=True)
class EncodeJob:
    """One transcode attempt.

    Scratch paths live under a directory unique to the job so concurrent
    jobs never share files.
    """
    source_disk: str
    source_path: str
    format: VideoFormat
    parameters: tuple[str, ...]
    scratch_directory: str
    job_id: str = field(default_factory=lambda: uuid.uuid4().hex)

    @classmethod
    def create(
        cls,
        source_disk: str,
        source_path: str,
        decision: Transcode,
        scratch_root: str,
    ) -> "EncodeJob":
        job_id = uuid.uuid4().hex
        return cls(
            source_disk=source_disk,
            source_path=source_path,
            format=decision.format,
            parameters=decision.parameters,
            scratch_directory=f"{scratch_root.strip('/')}/{job_id}",
            job_id=job_id,
        )

    @property
    def scratch_input_path(self) -> str:
        suffix = posixpath.splitext(self.source_path)[1]
        return f"{self.scratch_directory}/input{suffix}"

    @property
    def scratch_output_path(self) -> str:
        return f"{self.scratch_directory}/output.{self.format.value}"
