"""FFmpeg process wrapper.

Opens a local source file and exports it into a container with a given
parameter set. Failures surface as :class:`FFmpegError`.
"""

import json
import os
import subprocess
from typing import Optional, Sequence

from video_optimizer.core.config import settings
from video_optimizer.modules.transcoding.models import FORMAT_CODECS, VideoFormat

# Keep the tail of stderr in error messages; FFmpeg prints its banner first.
STDERR_TAIL_CHARS = 2000


class FFmpegError(Exception):
    """Raised when FFmpeg or FFprobe fails."""

    pass


class FFmpegVideo:
    """Handle to a source file opened by :class:`FFmpegEncoder`."""

    def __init__(self, encoder: "FFmpegEncoder", source_path: str, info: Optional[dict] = None):
        self.encoder = encoder
        self.source_path = source_path
        self.info = info or {}

    def export(
        self,
        video_format: VideoFormat,
        parameters: Sequence[str],
        destination: str,
    ) -> None:
        """Encode the source into ``destination``."""
        self.encoder.export(self.source_path, video_format, parameters, destination)


class FFmpegEncoder:
    """FFmpeg-based video encoder."""

    def __init__(
        self,
        ffmpeg_path: Optional[str] = None,
        ffprobe_path: Optional[str] = None,
        timeout: Optional[int] = None,
        probe: bool = True,
    ):
        """Initialize encoder.

        Args:
            ffmpeg_path: Path to ffmpeg binary
            ffprobe_path: Path to ffprobe binary
            timeout: Seconds before an encode is killed
            probe: Check with ffprobe that sources contain a video stream
        """
        self.ffmpeg_path = ffmpeg_path or settings.FFMPEG_PATH
        self.ffprobe_path = ffprobe_path or settings.FFPROBE_PATH
        self.timeout = timeout if timeout is not None else settings.FFMPEG_TIMEOUT
        self.probe = probe

    def get_video_info(self, input_path: str) -> dict:
        """Get video information using ffprobe.

        Args:
            input_path: Path to input video

        Returns:
            ffprobe format and stream information
        """
        cmd = [
            self.ffprobe_path,
            "-v", "quiet",
            "-print_format", "json",
            "-show_format",
            "-show_streams",
            input_path,
        ]

        try:
            result = subprocess.run(
                cmd, capture_output=True, text=True, check=True, timeout=self.timeout
            )
            return json.loads(result.stdout)
        except subprocess.CalledProcessError as e:
            raise FFmpegError(f"ffprobe failed: {e.stderr[-STDERR_TAIL_CHARS:] if e.stderr else e}") from e
        except subprocess.TimeoutExpired as e:
            raise FFmpegError("ffprobe timed out") from e
        except (OSError, json.JSONDecodeError) as e:
            raise FFmpegError(f"ffprobe failed: {e}") from e

    def open(self, source_path: str) -> FFmpegVideo:
        """Open a local source file.

        Raises:
            FFmpegError: If the file is missing or has no video stream
        """
        if not os.path.isfile(source_path):
            raise FFmpegError(f"Source file not found: {source_path}")

        info = None
        if self.probe:
            info = self.get_video_info(source_path)
            streams = info.get("streams", [])
            if not any(stream.get("codec_type") == "video" for stream in streams):
                raise FFmpegError(f"No video stream found in {source_path}")

        return FFmpegVideo(self, source_path, info)

    def build_export_command(
        self,
        source_path: str,
        video_format: VideoFormat,
        parameters: Sequence[str],
        destination: str,
    ) -> list[str]:
        """Build FFmpeg command for an export.

        Args:
            source_path: Local input path
            video_format: Output container
            parameters: Quality parameters from the decision engine
            destination: Local output path

        Returns:
            FFmpeg command as list of arguments
        """
        video_codec, audio_codec = FORMAT_CODECS[video_format]

        cmd = [
            self.ffmpeg_path,
            "-y",  # Overwrite output
            "-i", source_path,
            "-c:v", video_codec,
            *parameters,
            "-c:a", audio_codec,
        ]

        if video_format == VideoFormat.MP4:
            cmd.extend(["-movflags", "+faststart"])

        cmd.extend(["-f", video_format.value, destination])
        return cmd

    def export(
        self,
        source_path: str,
        video_format: VideoFormat,
        parameters: Sequence[str],
        destination: str,
    ) -> None:
        """Run FFmpeg and wait for it to finish.

        Raises:
            FFmpegError: If FFmpeg fails, times out or writes nothing
        """
        cmd = self.build_export_command(source_path, video_format, parameters, destination)

        try:
            process = subprocess.run(cmd, capture_output=True, text=True, timeout=self.timeout)
        except subprocess.TimeoutExpired as e:
            raise FFmpegError(f"Encoding timed out after {self.timeout}s") from e
        except OSError as e:
            raise FFmpegError(f"Unable to run ffmpeg: {e}") from e

        if process.returncode != 0:
            raise FFmpegError(f"Encoding failed: {process.stderr[-STDERR_TAIL_CHARS:]}")

        if not os.path.isfile(destination) or os.path.getsize(destination) == 0:
            raise FFmpegError("Encoding produced no output")
