"""Naming policy for stored uploads."""

import re
import uuid
from datetime import datetime, timezone
from typing import Callable, Optional

from video_optimizer.modules.transcoding.models import VideoFormat
from video_optimizer.modules.upload.models import FALLBACK_UPLOAD_NAME

TokenFactory = Callable[[], str]

_SEPARATORS = re.compile(r"[\\/]+")


def generate_unique_token() -> str:
    """Generate a lexically sortable, collision-resistant token.

    A UTC timestamp with microseconds followed by random hex, so tokens sort
    by creation time.
    """
    timestamp = datetime.now(timezone.utc).strftime("%Y%m%d%H%M%S%f")
    return f"{timestamp}{uuid.uuid4().hex[:12]}"


def sanitize_filename(filename: Optional[str]) -> str:
    """Reduce a client-supplied name to a bare file name.

    Anything up to the last path separator is dropped.
    """
    name = _SEPARATORS.split(filename or "")[-1].strip()
    if name in ("", ".", ".."):
        return FALLBACK_UPLOAD_NAME
    return name


def split_extension(filename: str) -> tuple[str, str]:
    """Split a file name into base name and extension (without the dot).

    Leading dots do not start an extension: ".env" has no extension.
    """
    stem, dot, extension = filename.rpartition(".")
    if not dot or not stem.strip("."):
        return filename, ""
    return stem, extension


def format_video_filename(filename: str, video_format: VideoFormat) -> str:
    """Replace the extension of ``filename`` with the container's."""
    stem, _ = split_extension(filename)
    return f"{stem}.{VideoFormat(video_format).value}"


def resolve_stored_name(
    original_name: Optional[str],
    preserve_filenames: bool,
    transcode_format: Optional[VideoFormat] = None,
    token_factory: TokenFactory = generate_unique_token,
) -> str:
    """Derive the file name an upload is stored under.

    Args:
        original_name: Client-supplied file name
        preserve_filenames: Keep the client name instead of a generated token
        transcode_format: Output container when the file was transcoded
        token_factory: Generates the base name when names are not preserved

    Returns:
        File name without any directory part
    """
    name = sanitize_filename(original_name)

    if preserve_filenames:
        if transcode_format is not None:
            return format_video_filename(name, transcode_format)
        return name

    if transcode_format is not None:
        extension = VideoFormat(transcode_format).value
    else:
        _, extension = split_extension(name)

    token = token_factory()
    return f"{token}.{extension}" if extension else token


def join_storage_path(directory: Optional[str], filename: str) -> str:
    """Join a directory and a file name with exactly one separator."""
    segments = [segment.strip("/") for segment in (directory or "", filename)]
    return "/".join(segment for segment in segments if segment)
