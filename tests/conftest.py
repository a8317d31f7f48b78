"""
LadderStream Test Configuration and Fixtures

Provides:
- Fake ffmpeg/ffprobe executables so the engine runs real subprocesses
  without FFmpeg installed
- A test configuration wired to those executables
- Shared markers and skip conditions
"""

import json
import logging
import os
import shutil
import stat
import sys
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

import pytest

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from ladderstream.config import (
    JobsConfig,
    LadderStreamConfig,
    LoggingConfig,
    TranscodingConfig,
    set_config,
)


# =============================================================================
# FAKE MEDIA TOOLS
# =============================================================================

FAKE_FFMPEG_TEMPLATE = '''#!{python}
import sys
import time

EXIT_CODE = {exit_code!r}
STDERR = {stderr!r}
PROGRESS_US = {progress_us!r}
WRITE_OUTPUT = {write_output!r}
FAIL_ON = {fail_on!r}
SLEEP = {sleep!r}

args = sys.argv[1:]
failing = EXIT_CODE != 0 and (FAIL_ON is None or any(FAIL_ON in a for a in args))

for micros in PROGRESS_US:
    sys.stdout.write("frame=10\\nfps=25.0\\n")
    sys.stdout.write("out_time_us=%d\\n" % micros)
    sys.stdout.write("speed=2.0x\\nprogress=continue\\n")
    sys.stdout.flush()
    if SLEEP:
        time.sleep(SLEEP)
sys.stdout.write("progress=end\\n")
sys.stdout.flush()

if failing:
    sys.stderr.write(STDERR)
    sys.exit(EXIT_CODE)

if WRITE_OUTPUT:
    output = args[-1]
    if "-hls_segment_filename" in args:
        pattern = args[args.index("-hls_segment_filename") + 1]
        segment = pattern.replace("%03d", "000")
        with open(segment, "wb") as f:
            f.write(b"\\x47" * 188)
        name = segment.replace("\\\\", "/").rsplit("/", 1)[-1]
        with open(output, "w") as f:
            f.write("#EXTM3U\\n#EXT-X-VERSION:3\\n#EXT-X-TARGETDURATION:10\\n")
            f.write("#EXTINF:10.0,\\n" + name + "\\n#EXT-X-ENDLIST\\n")
    else:
        with open(output, "wb") as f:
            f.write(b"fake media")
'''

FAKE_FFPROBE_TEMPLATE = '''#!{python}
import sys

EXIT_CODE = {exit_code!r}
STDOUT = {stdout!r}

sys.stdout.write(STDOUT)
if EXIT_CODE:
    sys.stderr.write("fake ffprobe failure\\n")
sys.exit(EXIT_CODE)
'''


def _write_executable(path: Path, content: str) -> str:
    path.write_text(content, encoding="utf-8")
    path.chmod(path.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
    return str(path)


def probe_document(
    width: int = 1920,
    height: int = 1080,
    duration: float = 10.0,
    frame_rate: str = "30/1",
    audio: bool = True
) -> Dict[str, Any]:
    """An ffprobe ``-show_format -show_streams`` JSON document."""
    streams: List[Dict[str, Any]] = [{
        "index": 0,
        "codec_type": "video",
        "codec_name": "h264",
        "width": width,
        "height": height,
        "r_frame_rate": frame_rate,
        "avg_frame_rate": frame_rate,
    }]
    if audio:
        streams.append({"index": 1, "codec_type": "audio", "codec_name": "aac"})
    return {
        "streams": streams,
        "format": {
            "format_name": "mov,mp4,m4a,3gp,3g2,mj2",
            "duration": f"{duration:.6f}",
            "bit_rate": "4000000",
        },
    }


@pytest.fixture
def fake_ffmpeg(tmp_path) -> Callable[..., str]:
    """
    Factory for a fake ffmpeg executable.

    The fake prints ``-progress`` blocks for each value in ``progress_us``,
    then either fails with ``exit_code``/``stderr`` (optionally only when an
    argument contains ``fail_on``) or writes the output file(s).
    """
    bin_dir = tmp_path / "bin"
    bin_dir.mkdir(exist_ok=True)
    counter = {"n": 0}

    def make(
        exit_code: int = 0,
        stderr: str = "",
        progress_us: Optional[List[int]] = None,
        write_output: bool = True,
        fail_on: Optional[str] = None,
        sleep: float = 0.0
    ) -> str:
        counter["n"] += 1
        content = FAKE_FFMPEG_TEMPLATE.format(
            python=sys.executable,
            exit_code=exit_code,
            stderr=stderr,
            progress_us=progress_us if progress_us is not None else [2_500_000, 5_000_000],
            write_output=write_output,
            fail_on=fail_on,
            sleep=sleep,
        )
        return _write_executable(bin_dir / f"ffmpeg-{counter['n']}", content)

    return make


@pytest.fixture
def fake_ffprobe(tmp_path) -> Callable[..., str]:
    """Factory for a fake ffprobe that prints a fixed document."""
    bin_dir = tmp_path / "bin"
    bin_dir.mkdir(exist_ok=True)
    counter = {"n": 0}

    def make(document: Any = None, exit_code: int = 0, raw: Optional[str] = None) -> str:
        counter["n"] += 1
        if raw is None:
            raw = json.dumps(document if document is not None else probe_document())
        content = FAKE_FFPROBE_TEMPLATE.format(
            python=sys.executable,
            exit_code=exit_code,
            stdout=raw,
        )
        return _write_executable(bin_dir / f"ffprobe-{counter['n']}", content)

    return make


# =============================================================================
# CONFIGURATION
# =============================================================================

@pytest.fixture
def make_config() -> Callable[..., LadderStreamConfig]:
    """Factory for a quiet test configuration. Keyword args go to TranscodingConfig."""

    def make(jobs: Optional[JobsConfig] = None, **transcoding: Any) -> LadderStreamConfig:
        config = LadderStreamConfig(
            transcoding=TranscodingConfig(**transcoding),
            jobs=jobs or JobsConfig(),
            logging=LoggingConfig(level="WARNING"),
        )
        set_config(config)
        return config

    return make


@pytest.fixture
def tool_config(make_config, fake_ffmpeg, fake_ffprobe) -> LadderStreamConfig:
    """Config pointing at a succeeding fake ffmpeg and a 1080p fake ffprobe."""
    return make_config(ffmpeg_path=fake_ffmpeg(), ffprobe_path=fake_ffprobe())


@pytest.fixture
def temp_output_dir(tmp_path) -> Path:
    """Per-test temp directory for output files."""
    output_dir = tmp_path / "output"
    output_dir.mkdir()
    return output_dir


@pytest.fixture
def restore_logging():
    """Put the root logger back the way it was after tests that reconfigure it."""
    root = logging.getLogger()
    handlers = list(root.handlers)
    level = root.level
    yield root
    for handler in list(root.handlers):
        if handler not in handlers:
            root.removeHandler(handler)
            handler.close()
    for handler in handlers:
        if handler not in root.handlers:
            root.addHandler(handler)
    root.setLevel(level)


# =============================================================================
# SKIP CONDITIONS
# =============================================================================

def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers", "slow: marks tests as slow (deselect with '-m \"not slow\"')"
    )
    config.addinivalue_line(
        "markers", "integration: marks tests as integration tests"
    )
    config.addinivalue_line(
        "markers", "requires_ffmpeg: marks tests that require FFmpeg"
    )


@pytest.fixture
def requires_ffmpeg():
    """Skip test if FFmpeg not available."""
    if not shutil.which("ffmpeg") or not shutil.which("ffprobe"):
        pytest.skip("FFmpeg not available")


@pytest.fixture
def posix_only():
    """Fake tool scripts rely on shebang lines."""
    if os.name != "posix":
        pytest.skip("Fake media tools need a POSIX shebang")
