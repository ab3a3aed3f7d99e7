"""Tests for the upload pipeline."""

import logging

import pytest

from video_optimizer.core.storage import Visibility
from video_optimizer.modules.transcoding.encoder import EncodeResult, EncoderAdapter
from video_optimizer.modules.transcoding.models import VideoFormat
from video_optimizer.modules.transcoding.schemas import OptimizationDefaults
from video_optimizer.modules.upload.placement import PlacementError
from video_optimizer.modules.upload.schemas import FieldConfig, UploadContext, UploadedFileRef
from video_optimizer.modules.upload.service import UploadPipeline, UploadRejectedError


class EmptyOutputEncoder(EncoderAdapter):
    """Reports success without producing any output."""

    def encode(self, job):
        return EncodeResult(success=True, content=None)


class TestSkipPath:
    """Files stored as uploaded."""

    def test_image_is_stored_unchanged(self, pipeline, make_upload, storage, fake_encoder) -> None:
        upload = make_upload("photo.png", b"png-bytes", "image/png")

        path = pipeline.save_uploaded_file(upload, FieldConfig(directory="images", optimize="high"))

        assert path == "images/token-1.png"
        assert storage.disk("public").get(path) == b"png-bytes"
        assert fake_encoder.jobs == []

    def test_video_without_policy_is_stored_unchanged(self, pipeline, make_upload, storage, fake_encoder) -> None:
        path = pipeline.save_uploaded_file(make_upload(), FieldConfig(directory="videos"))

        assert path == "videos/token-1.mov"
        assert storage.disk("public").get(path) == b"original-video"
        assert fake_encoder.jobs == []

    def test_move_within_disk(self, pipeline, make_upload, storage) -> None:
        upload = make_upload("photo.png", b"png-bytes", "image/png")
        config = FieldConfig(directory="images", disk="local", move_files=True)

        path = pipeline.save_uploaded_file(upload, config)

        assert path == "images/token-1.png"
        assert storage.disk("local").get(path) == b"png-bytes"
        assert not storage.disk("local").exists(upload.path)

    def test_preserved_name(self, pipeline, make_upload) -> None:
        path = pipeline.save_uploaded_file(
            make_upload("holiday.mov"),
            FieldConfig(directory="/videos/", preserve_filenames=True),
        )

        assert path == "videos/holiday.mov"


class TestTranscodePath:
    """Videos re-encoded before storage."""

    def test_quicktime_to_mp4(self, pipeline, make_upload, storage, fake_encoder) -> None:
        path = pipeline.save_uploaded_file(
            make_upload("clip.mov"),
            FieldConfig(directory="videos", target_format="mp4"),
        )

        assert path == "videos/token-1.mp4"
        assert storage.disk("public").get(path) == b"transcoded-video"
        [job] = fake_encoder.jobs
        assert job.format == VideoFormat.MP4
        assert job.parameters == ("-crf", "23", "-preset", "medium")
        assert job.scratch_directory.startswith("tmp/scratch/")

    def test_preserved_name_gets_container_extension(self, pipeline, make_upload) -> None:
        path = pipeline.save_uploaded_file(
            make_upload("clip.MOV"),
            FieldConfig(directory="videos", optimize="low", preserve_filenames=True),
        )

        assert path == "videos/clip.webm"

    def test_process_defaults_apply(self, storage, fake_encoder, token_factory, make_upload) -> None:
        pipeline = UploadPipeline(
            storage=storage,
            encoder=fake_encoder,
            defaults=OptimizationDefaults(quality_level="high"),
            token_factory=token_factory,
        )

        path = pipeline.save_uploaded_file(make_upload(), FieldConfig(directory="videos"))

        assert path == "videos/token-1.webm"
        assert fake_encoder.jobs[0].parameters == ("-crf", "20", "-b:v", "0")

    def test_private_visibility(self, pipeline, make_upload, storage) -> None:
        artifact = pipeline.store(
            make_upload(),
            FieldConfig(directory="videos", target_format="webm", visibility=Visibility.PRIVATE),
        )

        assert artifact.transcoded
        assert artifact.format == VideoFormat.WEBM
        assert artifact.visibility == Visibility.PRIVATE

    def test_failed_transcode_stores_original(
        self, storage, failing_encoder, token_factory, make_upload, caplog
    ) -> None:
        pipeline = UploadPipeline(
            storage=storage,
            encoder=failing_encoder,
            defaults=OptimizationDefaults(),
            token_factory=token_factory,
        )

        with caplog.at_level(logging.ERROR):
            artifact = pipeline.store(make_upload("clip.mov"), FieldConfig(directory="videos", optimize="medium"))

        assert artifact.path == "videos/token-1.mov"
        assert not artifact.transcoded
        assert storage.disk("public").get(artifact.path) == b"original-video"
        assert "upload.transcode_failed" in [record.getMessage() for record in caplog.records]

    def test_empty_encoder_output_stores_original(self, storage, token_factory, make_upload) -> None:
        pipeline = UploadPipeline(
            storage=storage,
            encoder=EmptyOutputEncoder(),
            defaults=OptimizationDefaults(),
            token_factory=token_factory,
        )

        artifact = pipeline.store(make_upload("clip.mov"), FieldConfig(directory="videos", optimize="high"))

        assert artifact.path == "videos/token-1.mov"
        assert not artifact.transcoded
        assert storage.disk("public").get(artifact.path) == b"original-video"


class TestSourceLifecycle:
    """Temporary uploads."""

    def test_missing_source_writes_nothing(self, pipeline, storage, tmp_path, list_files, fake_encoder) -> None:
        upload = UploadedFileRef(
            original_name="clip.mov",
            mime_type="video/quicktime",
            size=10,
            disk="local",
            path="tmp/uploads/gone.mov",
        )

        path = pipeline.save_uploaded_file(upload, FieldConfig(directory="videos", optimize="high"))

        assert path is None
        assert list_files(tmp_path / "public") == []
        assert fake_encoder.jobs == []

    def test_unknown_source_disk_counts_as_missing(self, pipeline) -> None:
        upload = UploadedFileRef("clip.mov", "video/quicktime", 10, "nowhere", "tmp/uploads/clip.mov")

        assert pipeline.save_uploaded_file(upload, FieldConfig()) is None

    def test_unreadable_source_path_counts_as_missing(self, pipeline, tmp_path, list_files) -> None:
        upload = UploadedFileRef("clip.mov", "video/quicktime", 1, "local", "tmp/uploads/bad\x00name.mov")

        assert pipeline.save_uploaded_file(upload, FieldConfig()) is None
        assert list_files(tmp_path / "public") == []

    @pytest.mark.parametrize("optimize", [None, "medium"])
    def test_temporary_file_is_deleted(self, pipeline, make_upload, storage, optimize) -> None:
        upload = make_upload()

        pipeline.save_uploaded_file(upload, FieldConfig(directory="videos", optimize=optimize))

        assert not storage.disk("local").exists(upload.path)

    def test_placement_failure_propagates(self, pipeline, make_upload, storage) -> None:
        upload = make_upload()

        with pytest.raises(PlacementError):
            pipeline.save_uploaded_file(upload, FieldConfig(disk="unconfigured"))

        assert not storage.disk("local").exists(upload.path)


class TestFieldConfig:
    """Configuration resolution."""

    def test_directory_resolver(self, pipeline, make_upload) -> None:
        config = FieldConfig(directory_resolver=lambda context: f"records/{context.record_key}")

        path = pipeline.save_uploaded_file(make_upload(), config, UploadContext(record_key="42"))

        assert path == "records/42/token-1.mov"

    def test_accepted_types(self, pipeline) -> None:
        config = FieldConfig()

        pipeline.ensure_accepted("video/mp4", config)
        with pytest.raises(UploadRejectedError):
            pipeline.ensure_accepted("image/png", config)

    def test_wildcard_and_open_types(self, pipeline) -> None:
        pipeline.ensure_accepted("video/x-flv", FieldConfig(accepted_file_types=("video/*",)))
        pipeline.ensure_accepted("image/png", FieldConfig(accepted_file_types=()))


class TestBatchSave:
    """Saving every file of a field."""

    def test_multiple_field(self, pipeline, make_upload) -> None:
        first = make_upload("one.mp4", mime_type="video/mp4")
        missing = UploadedFileRef("two.mp4", "video/mp4", 1, "local", "tmp/uploads/gone.mp4")
        config = FieldConfig(directory="videos", multiple=True)

        saved = pipeline.save_uploaded_files(["videos/existing.mp4", first, missing], config)

        assert saved.state == ["videos/existing.mp4", "videos/token-1.mp4"]
        assert saved.file_names == {"videos/token-1.mp4": "one.mp4"}

    def test_single_field(self, pipeline, make_upload) -> None:
        saved = pipeline.save_uploaded_files(make_upload("one.mp4"), FieldConfig(directory="videos"))

        assert saved.state == "videos/token-1.mp4"

    def test_nothing_stored(self, pipeline) -> None:
        assert pipeline.save_uploaded_files(None, FieldConfig()).state is None
        assert pipeline.save_uploaded_files([], FieldConfig(multiple=True)).state == []

    def test_store_files_disabled(self, pipeline, make_upload) -> None:
        upload = make_upload()

        saved = pipeline.save_uploaded_files([upload], FieldConfig(store_files=False))

        assert saved.state == [upload]
        assert saved.file_names == {}

    def test_concurrent_batch(self, storage, fake_encoder, token_factory, make_upload) -> None:
        pipeline = UploadPipeline(
            storage=storage,
            encoder=fake_encoder,
            defaults=OptimizationDefaults(),
            token_factory=token_factory,
            max_workers=4,
        )
        uploads = [make_upload(f"clip-{i}.mov") for i in range(6)]

        saved = pipeline.save_uploaded_files(
            uploads,
            FieldConfig(directory="videos", target_format="mp4", multiple=True),
        )

        assert len(saved.state) == 6
        assert len(set(saved.state)) == 6
        assert all(path.endswith(".mp4") for path in saved.state)
        assert sorted(saved.file_names.values()) == sorted(f"clip-{i}.mov" for i in range(6))
        assert len({job.scratch_directory for job in fake_encoder.jobs}) == 6


class TestGetUploadedFile:
    """Stored file descriptions."""

    def test_public_file(self, pipeline, make_upload) -> None:
        path = pipeline.save_uploaded_file(make_upload("clip.mp4", mime_type="video/mp4"), FieldConfig(directory="videos"))

        info = pipeline.get_uploaded_file(path, FieldConfig(), {path: "clip.mp4"})

        assert info.name == "clip.mp4"
        assert info.size == len(b"original-video")
        assert info.type == "video/mp4"
        assert info.url == f"/storage/{path}"

    def test_private_file_falls_back_to_plain_url(self, pipeline, storage) -> None:
        storage.disk("public").put("videos/a.mp4", b"x", Visibility.PRIVATE)

        info = pipeline.get_uploaded_file("videos/a.mp4", FieldConfig(visibility=Visibility.PRIVATE))

        assert info.url == "/storage/videos/a.mp4"
        assert info.name == "a.mp4"

    def test_missing_file(self, pipeline) -> None:
        assert pipeline.get_uploaded_file("videos/missing.mp4", FieldConfig()) is None

    def test_without_file_information(self, pipeline) -> None:
        info = pipeline.get_uploaded_file(
            "videos/missing.mp4",
            FieldConfig(fetch_file_information=False),
        )

        assert info.size == 0
        assert info.type is None
        assert info.url == "/storage/videos/missing.mp4"
