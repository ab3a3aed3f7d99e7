"""Upload field defaults."""

# Media types a video field accepts unless configured otherwise
ACCEPTED_VIDEO_TYPES = (
    "video/mp4",
    "video/webm",
    "video/ogg",
    "video/quicktime",
    "video/x-msvideo",
    "video/x-matroska",
)

# Name used for uploads without a client-supplied name
FALLBACK_UPLOAD_NAME = "upload"
