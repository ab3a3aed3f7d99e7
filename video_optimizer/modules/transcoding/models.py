"""Quality levels, output formats and their encoder parameters."""

from enum import Enum


class QualityLevel(str, Enum):
    """Optimization level requested for a video field."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class VideoFormat(str, Enum):
    """Supported output containers."""
    WEBM = "webm"
    MP4 = "mp4"


# Container used when only a quality level is configured
DEFAULT_FORMAT = VideoFormat.WEBM

# Level used when the configured level is unset or not recognised
DEFAULT_QUALITY = QualityLevel.MEDIUM

# Video/audio codecs per container
FORMAT_CODECS = {
    VideoFormat.WEBM: ("libvpx-vp9", "libopus"),
    VideoFormat.MP4: ("libx264", "aac"),
}

# Constant rate factor per container and level. Lower CRF keeps more detail.
# VP9 accepts 0-63 and needs "-b:v 0" for constant quality mode; x264
# accepts 0-51.
CRF_TABLE = {
    VideoFormat.WEBM: {
        QualityLevel.LOW: 36,
        QualityLevel.MEDIUM: 28,
        QualityLevel.HIGH: 20,
    },
    VideoFormat.MP4: {
        QualityLevel.LOW: 28,
        QualityLevel.MEDIUM: 23,
        QualityLevel.HIGH: 18,
    },
}

# Parameters appended after the CRF value, per container
RATE_CONTROL_PARAMETERS = {
    VideoFormat.WEBM: ("-b:v", "0"),
    VideoFormat.MP4: ("-preset", "medium"),
}
