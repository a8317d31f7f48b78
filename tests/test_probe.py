"""
Tests for ffprobe output parsing and the media inspector.
"""

import pytest

from ladderstream.errors import ProbeError, ToolUnavailableError
from ladderstream.transcoding.probe import (
    MediaInspector,
    parse_frame_rate,
    parse_probe_output,
    protocol_args,
)

from conftest import probe_document


class TestParseProbeOutput:

    def test_full_document(self):
        probe = parse_probe_output(probe_document(1920, 1080, 12.5, "30000/1001"))
        assert probe.width == 1920
        assert probe.height == 1080
        assert probe.duration_seconds == pytest.approx(12.5)
        assert probe.framerate == pytest.approx(29.97)
        assert probe.video_codec == "h264"
        assert probe.audio_codec == "aac"
        assert probe.has_audio
        assert probe.bitrate_bps == 4_000_000

    def test_missing_audio(self):
        probe = parse_probe_output(probe_document(audio=False))
        assert probe.audio_codec == ""
        assert not probe.has_audio

    def test_duration_falls_back_to_stream(self):
        document = probe_document()
        del document["format"]["duration"]
        document["streams"][0]["duration"] = "7.25"
        assert parse_probe_output(document).duration_seconds == pytest.approx(7.25)

    def test_unknown_duration_is_zero(self):
        document = probe_document()
        document["format"]["duration"] = "N/A"
        assert parse_probe_output(document).duration_seconds == 0.0

    def test_no_video_stream(self):
        document = {
            "streams": [{"codec_type": "audio", "codec_name": "mp3"}],
            "format": {"duration": "180.0"},
        }
        with pytest.raises(ProbeError):
            parse_probe_output(document)

    def test_empty_document(self):
        with pytest.raises(ProbeError):
            parse_probe_output({})


class TestHelpers:

    @pytest.mark.parametrize("value,expected", [
        ("30/1", 30.0),
        ("24000/1001", 23.976),
        ("0/0", 0.0),
        ("", 0.0),
        (None, 0.0),
        ("__import__('os')", 0.0),
    ])
    def test_parse_frame_rate(self, value, expected):
        assert parse_frame_rate(value) == pytest.approx(expected)

    def test_protocol_args(self):
        assert protocol_args("/media/in.mp4") == []
        assert "-reconnect" in protocol_args("http://example.com/in.mp4")

    def test_command_is_metadata_only(self):
        cmd = MediaInspector("ffprobe").build_command("in.mp4")
        assert cmd[0] == "ffprobe"
        assert cmd[-1] == "in.mp4"
        assert "-show_streams" in cmd
        assert "-show_format" in cmd


@pytest.mark.asyncio
class TestMediaInspector:

    async def test_probe_with_fake_tool(self, posix_only, fake_ffprobe):
        inspector = MediaInspector(fake_ffprobe(probe_document(1280, 720, 42.0)))
        probe = await inspector.probe("in.mp4")
        assert (probe.width, probe.height) == (1280, 720)
        assert probe.duration_seconds == pytest.approx(42.0)

    async def test_nonzero_exit(self, posix_only, fake_ffprobe):
        inspector = MediaInspector(fake_ffprobe(raw="", exit_code=1))
        with pytest.raises(ProbeError) as exc_info:
            await inspector.probe("missing.mp4")
        assert exc_info.value.exit_code == 1
        assert "fake ffprobe failure" in exc_info.value.stderr

    async def test_invalid_json(self, posix_only, fake_ffprobe):
        inspector = MediaInspector(fake_ffprobe(raw="this is not json"))
        with pytest.raises(ProbeError):
            await inspector.probe("in.mp4")

    async def test_non_object_json(self, posix_only, fake_ffprobe):
        inspector = MediaInspector(fake_ffprobe(raw="[1, 2, 3]"))
        with pytest.raises(ProbeError):
            await inspector.probe("in.mp4")

    async def test_missing_binary(self, tmp_path):
        inspector = MediaInspector(str(tmp_path / "no-such-ffprobe"))
        with pytest.raises(ToolUnavailableError):
            await inspector.probe("in.mp4")
