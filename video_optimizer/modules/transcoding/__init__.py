"""Transcoding module for video uploads.

Decides whether an uploaded file should be re-encoded and runs FFmpeg on a
staged copy of it.
"""
