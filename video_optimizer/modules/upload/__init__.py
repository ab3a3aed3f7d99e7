"""Upload module.

Stores uploaded files under their field's naming, disk and visibility rules,
transcoding videos on the way.
"""

from video_optimizer.modules.upload.naming import (
    generate_unique_token,
    join_storage_path,
    resolve_stored_name,
)
from video_optimizer.modules.upload.placement import (
    CopyDirective,
    MoveDirective,
    PlacementError,
    StoragePlacement,
)
from video_optimizer.modules.upload.router import router as upload_router
from video_optimizer.modules.upload.schemas import (
    DirectoryResolver,
    FieldConfig,
    ResolvedFieldConfig,
    SavedFiles,
    StoredArtifact,
    StoredFileInfo,
    UploadContext,
    UploadedFileRef,
)
from video_optimizer.modules.upload.service import (
    UploadPipeline,
    UploadRejectedError,
    UploadServiceError,
)

__all__ = [
    # Naming
    "generate_unique_token",
    "join_storage_path",
    "resolve_stored_name",
    # Placement
    "CopyDirective",
    "MoveDirective",
    "PlacementError",
    "StoragePlacement",
    # Schemas
    "DirectoryResolver",
    "FieldConfig",
    "ResolvedFieldConfig",
    "SavedFiles",
    "StoredArtifact",
    "StoredFileInfo",
    "UploadContext",
    "UploadedFileRef",
    # Service
    "UploadPipeline",
    "UploadRejectedError",
    "UploadServiceError",
    # Router
    "upload_router",
]
