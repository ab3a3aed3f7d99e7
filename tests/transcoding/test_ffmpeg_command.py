"""Tests for the FFmpeg process wrapper."""

import json
import subprocess

import pytest

from video_optimizer.modules.transcoding import ffmpeg
from video_optimizer.modules.transcoding.ffmpeg import FFmpegEncoder, FFmpegError
from video_optimizer.modules.transcoding.models import VideoFormat


@pytest.fixture
def encoder() -> FFmpegEncoder:
    return FFmpegEncoder(ffmpeg_path="ffmpeg", ffprobe_path="ffprobe", timeout=30)


@pytest.fixture
def source(tmp_path):
    path = tmp_path / "input.mov"
    path.write_bytes(b"source")
    return path


def completed(cmd, returncode=0, stdout="", stderr=""):
    return subprocess.CompletedProcess(cmd, returncode, stdout=stdout, stderr=stderr)


class TestBuildExportCommand:
    """FFmpeg argument lists."""

    def test_webm_command(self, encoder: FFmpegEncoder) -> None:
        cmd = encoder.build_export_command(
            "in.mov", VideoFormat.WEBM, ("-crf", "28", "-b:v", "0"), "out.webm"
        )

        assert cmd == [
            "ffmpeg", "-y", "-i", "in.mov",
            "-c:v", "libvpx-vp9", "-crf", "28", "-b:v", "0",
            "-c:a", "libopus",
            "-f", "webm", "out.webm",
        ]

    def test_mp4_command_moves_index_to_front(self, encoder: FFmpegEncoder) -> None:
        cmd = encoder.build_export_command(
            "in.mov", VideoFormat.MP4, ("-crf", "23", "-preset", "medium"), "out.mp4"
        )

        assert cmd == [
            "ffmpeg", "-y", "-i", "in.mov",
            "-c:v", "libx264", "-crf", "23", "-preset", "medium",
            "-c:a", "aac",
            "-movflags", "+faststart",
            "-f", "mp4", "out.mp4",
        ]


class TestExport:
    """Running FFmpeg."""

    def test_success(self, encoder: FFmpegEncoder, source, tmp_path, monkeypatch) -> None:
        destination = tmp_path / "out.webm"

        def fake_run(cmd, **kwargs):
            destination.write_bytes(b"encoded")
            return completed(cmd)

        monkeypatch.setattr(ffmpeg.subprocess, "run", fake_run)

        encoder.export(str(source), VideoFormat.WEBM, ("-crf", "28"), str(destination))

        assert destination.read_bytes() == b"encoded"

    def test_non_zero_exit(self, encoder: FFmpegEncoder, source, tmp_path, monkeypatch) -> None:
        monkeypatch.setattr(
            ffmpeg.subprocess, "run",
            lambda cmd, **kwargs: completed(cmd, returncode=1, stderr="Invalid data found"),
        )

        with pytest.raises(FFmpegError, match="Invalid data found"):
            encoder.export(str(source), VideoFormat.MP4, (), str(tmp_path / "out.mp4"))

    def test_timeout(self, encoder: FFmpegEncoder, source, tmp_path, monkeypatch) -> None:
        def fake_run(cmd, **kwargs):
            raise subprocess.TimeoutExpired(cmd, kwargs.get("timeout"))

        monkeypatch.setattr(ffmpeg.subprocess, "run", fake_run)

        with pytest.raises(FFmpegError, match="timed out"):
            encoder.export(str(source), VideoFormat.MP4, (), str(tmp_path / "out.mp4"))

    def test_missing_binary(self, encoder: FFmpegEncoder, source, tmp_path, monkeypatch) -> None:
        def fake_run(cmd, **kwargs):
            raise FileNotFoundError(cmd[0])

        monkeypatch.setattr(ffmpeg.subprocess, "run", fake_run)

        with pytest.raises(FFmpegError, match="Unable to run ffmpeg"):
            encoder.export(str(source), VideoFormat.MP4, (), str(tmp_path / "out.mp4"))

    def test_empty_output(self, encoder: FFmpegEncoder, source, tmp_path, monkeypatch) -> None:
        destination = tmp_path / "out.mp4"

        def fake_run(cmd, **kwargs):
            destination.write_bytes(b"")
            return completed(cmd)

        monkeypatch.setattr(ffmpeg.subprocess, "run", fake_run)

        with pytest.raises(FFmpegError, match="no output"):
            encoder.export(str(source), VideoFormat.MP4, (), str(destination))


class TestOpen:
    """Opening sources."""

    def test_missing_source(self, encoder: FFmpegEncoder, tmp_path) -> None:
        with pytest.raises(FFmpegError, match="not found"):
            encoder.open(str(tmp_path / "missing.mov"))

    def test_source_with_video_stream(self, encoder: FFmpegEncoder, source, monkeypatch) -> None:
        info = {"streams": [{"codec_type": "audio"}, {"codec_type": "video"}], "format": {}}
        monkeypatch.setattr(
            ffmpeg.subprocess, "run", lambda cmd, **kwargs: completed(cmd, stdout=json.dumps(info))
        )

        video = encoder.open(str(source))

        assert video.source_path == str(source)
        assert video.info == info

    def test_source_without_video_stream(self, encoder: FFmpegEncoder, source, monkeypatch) -> None:
        info = {"streams": [{"codec_type": "audio"}]}
        monkeypatch.setattr(
            ffmpeg.subprocess, "run", lambda cmd, **kwargs: completed(cmd, stdout=json.dumps(info))
        )

        with pytest.raises(FFmpegError, match="No video stream"):
            encoder.open(str(source))

    def test_probe_failure(self, encoder: FFmpegEncoder, source, monkeypatch) -> None:
        def fake_run(cmd, **kwargs):
            raise subprocess.CalledProcessError(1, cmd, stderr="moov atom not found")

        monkeypatch.setattr(ffmpeg.subprocess, "run", fake_run)

        with pytest.raises(FFmpegError, match="moov atom not found"):
            encoder.open(str(source))

    def test_probe_disabled(self, source, monkeypatch) -> None:
        def fail(*args, **kwargs):
            raise AssertionError("ffprobe should not run")

        monkeypatch.setattr(ffmpeg.subprocess, "run", fail)

        video = FFmpegEncoder(probe=False).open(str(source))

        assert video.info == {}
