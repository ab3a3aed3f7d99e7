"""Transcode decision engine.

Pure functions: the same media type and policy always give the same
decision, and nothing here touches storage or settings.
"""

from typing import Optional

from video_optimizer.modules.transcoding.models import (
    CRF_TABLE,
    DEFAULT_FORMAT,
    DEFAULT_QUALITY,
    RATE_CONTROL_PARAMETERS,
    QualityLevel,
    VideoFormat,
)
from video_optimizer.modules.transcoding.schemas import (
    OptimizationPolicy,
    Skip,
    Transcode,
    TranscodeDecision,
)

VIDEO_MEDIA_PREFIX = "video/"


def is_video_media_type(media_type: Optional[str]) -> bool:
    """Check whether a declared media type belongs to the video category."""
    if not media_type:
        return False
    return media_type.strip().lower().startswith(VIDEO_MEDIA_PREFIX)


def get_crf(video_format: VideoFormat, quality_level: Optional[QualityLevel] = None) -> int:
    """Get the CRF value for a container and quality level.

    An unset level maps to the container's medium value.
    """
    levels = CRF_TABLE[video_format]
    return levels.get(quality_level or DEFAULT_QUALITY, levels[DEFAULT_QUALITY])


def get_quality_parameters(
    video_format: VideoFormat,
    quality_level: Optional[QualityLevel] = None,
) -> tuple[str, ...]:
    """Get encoder parameters for a container and quality level.

    Args:
        video_format: Target container
        quality_level: Requested level

    Returns:
        FFmpeg arguments, e.g. ("-crf", "28", "-b:v", "0")
    """
    crf = get_crf(video_format, quality_level)
    return ("-crf", str(crf), *RATE_CONTROL_PARAMETERS[video_format])


def decide(media_type: Optional[str], policy: OptimizationPolicy) -> TranscodeDecision:
    """Decide whether and how to transcode an uploaded file.

    Args:
        media_type: Declared MIME type of the upload
        policy: Resolved optimization policy

    Returns:
        Skip for non-video files or an empty policy, otherwise Transcode
    """
    if not is_video_media_type(media_type):
        return Skip(reason="not a video")

    if policy.is_empty:
        return Skip(reason="no optimization configured")

    video_format = policy.target_format or DEFAULT_FORMAT
    return Transcode(
        format=video_format,
        parameters=get_quality_parameters(video_format, policy.quality_level),
    )
