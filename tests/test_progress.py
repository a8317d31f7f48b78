"""
Tests for ffmpeg progress parsing.
"""

import pytest

from ladderstream.transcoding.models import TranscodeProgress
from ladderstream.transcoding.progress import (
    KeyValueProgressParser,
    compute_percent,
    parse_clock,
)

PROGRESS_BLOCK = """frame=240
fps=59.94
stream_0_0_q=28.0
bitrate=1234.5kbits/s
total_size=1048576
out_time_us=4000000
out_time_ms=4000000
out_time=00:00:04.000000
dup_frames=0
drop_frames=0
speed=2.01x
progress=continue
"""


class TestKeyValueProgressParser:

    def test_block_produces_one_update(self):
        parser = KeyValueProgressParser()
        progress = TranscodeProgress()
        updates = [parser.feed(line, progress) for line in PROGRESS_BLOCK.splitlines()]

        assert updates.count(True) == 1
        assert updates[-1] is True
        assert progress.time == pytest.approx(4.0)
        assert progress.frame == 240
        assert progress.fps == pytest.approx(59.94)
        assert progress.speed == pytest.approx(2.01)
        assert progress.done is False

    def test_end_marks_done(self):
        parser = KeyValueProgressParser()
        progress = TranscodeProgress()
        assert parser.feed("progress=end\n", progress) is True
        assert progress.done is True

    def test_negative_time_ignored(self):
        # ffmpeg reports a negative out_time before the first packet
        parser = KeyValueProgressParser()
        progress = TranscodeProgress(time=1.5)
        parser.feed("out_time_us=-9223372036854775807", progress)
        assert progress.time == 1.5

    def test_na_values_ignored(self):
        parser = KeyValueProgressParser()
        progress = TranscodeProgress()
        for line in ("out_time_us=N/A", "speed=N/A", "fps=N/A", "frame=N/A"):
            assert parser.feed(line, progress) is False
        assert progress.time == 0.0
        assert progress.speed == 0.0

    def test_garbage_lines(self):
        parser = KeyValueProgressParser()
        progress = TranscodeProgress()
        assert parser.feed("", progress) is False
        assert parser.feed("not a progress line", progress) is False


class TestHelpers:

    @pytest.mark.parametrize("value,expected", [
        ("00:00:04.000000", 4.0),
        ("01:02:03.5", 3723.5),
        ("02:30", 150.0),
        ("garbage", None),
    ])
    def test_parse_clock(self, value, expected):
        assert parse_clock(value) == expected

    def test_compute_percent(self):
        assert compute_percent(5.0, 10.0) == 50.0
        assert compute_percent(15.0, 10.0) == 100.0
        assert compute_percent(5.0, 0.0) == 0.0
        assert compute_percent(-1.0, 10.0) == 0.0
