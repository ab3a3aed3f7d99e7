"""Storage placement.

Writes a file to its destination disk, either from in-memory bytes (an
encode result) or from another stored file by copy or move.
"""

import logging
from contextlib import closing
from dataclasses import dataclass
from typing import Optional, Union

from video_optimizer.core.logging import log_warning
from video_optimizer.core.storage import (
    FileNotFoundInStorageError,
    StorageError,
    StorageManager,
    Visibility,
    get_storage,
)

logger = logging.getLogger(__name__)


class PlacementError(Exception):
    """Raised when a file cannot be written to its destination."""

    pass


@dataclass(frozen=True)
class CopyDirective:
    """Copy a stored file, leaving the source in place."""
    source_disk: str
    source_path: str


@dataclass(frozen=True)
class MoveDirective:
    """Move a stored file, removing the source."""
    source_disk: str
    source_path: str


PlacementSource = Union[bytes, CopyDirective, MoveDirective]


class StoragePlacement:
    """Puts pipeline output onto destination disks."""

    def __init__(self, storage: Optional[StorageManager] = None):
        self.storage = storage or get_storage()

    def place(
        self,
        source: PlacementSource,
        dest_disk: str,
        dest_path: str,
        visibility: Visibility = Visibility.PUBLIC,
    ) -> str:
        """Write ``source`` to ``dest_path`` on ``dest_disk``.

        Moving a file that was already moved to the destination is a no-op,
        so a retried save does not fail.

        Args:
            source: Bytes, or a copy/move directive naming a stored file
            dest_disk: Destination disk name
            dest_path: Destination path on that disk
            visibility: Visibility of the written file

        Returns:
            The destination path

        Raises:
            PlacementError: If the destination could not be written
        """
        try:
            if isinstance(source, MoveDirective):
                return self._move(source, dest_disk, dest_path, visibility)
            if isinstance(source, CopyDirective):
                return self._copy(source, dest_disk, dest_path, visibility)
            self.storage.disk(dest_disk).put(dest_path, bytes(source), visibility)
            return dest_path
        except PlacementError:
            raise
        except (StorageError, OSError) as e:
            raise PlacementError(f"Unable to store {dest_disk}:{dest_path}: {e}") from e

    def _copy(
        self,
        source: Union[CopyDirective, MoveDirective],
        dest_disk: str,
        dest_path: str,
        visibility: Visibility,
    ) -> str:
        origin = self.storage.disk(source.source_disk)
        destination = self.storage.disk(dest_disk)
        with closing(origin.open_stream(source.source_path)) as stream:
            destination.put(dest_path, stream, visibility)
        return dest_path

    def _move(
        self,
        source: MoveDirective,
        dest_disk: str,
        dest_path: str,
        visibility: Visibility,
    ) -> str:
        if source.source_disk != dest_disk:
            # No cross-disk rename; the caller discards the source afterwards.
            return self._copy(source, dest_disk, dest_path, visibility)

        disk = self.storage.disk(dest_disk)
        if source.source_path == dest_path:
            return dest_path

        try:
            disk.move(source.source_path, dest_path, visibility)
            return dest_path
        except FileNotFoundInStorageError as e:
            if disk.exists(dest_path):
                return dest_path
            raise PlacementError(f"Source file not found: {source.source_path}") from e
        except StorageError as e:
            log_warning(
                logger,
                "placement.move_failed",
                disk=dest_disk,
                source_path=source.source_path,
                dest_path=dest_path,
                error=str(e),
            )
            return self._copy(source, dest_disk, dest_path, visibility)
