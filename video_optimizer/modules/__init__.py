"""Application modules.

- transcoding: transcode decisions, FFmpeg wrapper and encoder adapter
- upload: field configuration, naming, storage placement and the upload pipeline
"""
