"""Video upload optimizer.

Stores uploaded files and, for video uploads, transcodes them with FFmpeg
before they are persisted.
"""

__version__ = "0.1.0"
