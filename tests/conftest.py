"""Shared fixtures: local disks under tmp_path, a fake encoder and a pipeline."""

import itertools
import uuid
from typing import Callable, Optional

import pytest

from video_optimizer.core.storage import LocalStorage, StorageConfig, StorageManager, Visibility
from video_optimizer.modules.transcoding.encoder import EncodeError, EncodeResult, EncoderAdapter
from video_optimizer.modules.transcoding.schemas import EncodeJob, OptimizationDefaults
from video_optimizer.modules.upload.schemas import UploadedFileRef
from video_optimizer.modules.upload.service import UploadPipeline


class FakeEncoder(EncoderAdapter):
    """Encoder that records jobs and returns a canned result."""

    def __init__(self, content: bytes = b"transcoded-video", error: Optional[str] = None):
        self.content = content
        self.error = error
        self.jobs: list[EncodeJob] = []

    def encode(self, job: EncodeJob) -> EncodeResult:
        self.jobs.append(job)
        if self.error is not None:
            return EncodeResult(success=False, error=EncodeError(self.error))
        return EncodeResult(success=True, content=self.content)


@pytest.fixture
def storage(tmp_path) -> StorageManager:
    return StorageManager(
        disks={
            "local": LocalStorage(StorageConfig(backend="local", local_path=str(tmp_path / "local"))),
            "public": LocalStorage(StorageConfig(
                backend="local",
                local_path=str(tmp_path / "public"),
                base_url="/storage",
            )),
        },
        default_disk="public",
    )


@pytest.fixture
def fake_encoder() -> FakeEncoder:
    return FakeEncoder()


@pytest.fixture
def failing_encoder() -> FakeEncoder:
    return FakeEncoder(error="ffmpeg exited with 1")


@pytest.fixture
def token_factory() -> Callable[[], str]:
    counter = itertools.count(1)
    return lambda: f"token-{next(counter)}"


@pytest.fixture
def pipeline(storage, fake_encoder, token_factory) -> UploadPipeline:
    return UploadPipeline(
        storage=storage,
        encoder=fake_encoder,
        defaults=OptimizationDefaults(),
        scratch_directory="tmp/scratch",
        token_factory=token_factory,
    )


@pytest.fixture
def make_upload(storage) -> Callable[..., UploadedFileRef]:
    """Spool content onto the local disk like a framework upload handler."""

    def _make(
        original_name: str = "clip.mov",
        content: bytes = b"original-video",
        mime_type: str = "video/quicktime",
    ) -> UploadedFileRef:
        extension = original_name.rpartition(".")[2] if "." in original_name else "bin"
        path = f"tmp/uploads/{uuid.uuid4().hex}.{extension}"
        storage.disk("local").put(path, content, Visibility.PRIVATE)
        return UploadedFileRef(
            original_name=original_name,
            mime_type=mime_type,
            size=len(content),
            disk="local",
            path=path,
        )

    return _make


def stored_files(root) -> list[str]:
    """List every file below a directory, relative to it."""
    return sorted(
        str(path.relative_to(root)).replace("\\", "/")
        for path in root.rglob("*")
        if path.is_file()
    )


@pytest.fixture
def list_files() -> Callable:
    return stored_files
