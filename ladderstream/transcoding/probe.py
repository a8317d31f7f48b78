"""
Media inspection with ffprobe.
"""

import asyncio
import json
import logging
from fractions import Fraction
from typing import Any, Dict, List, Optional

from ..errors import ProbeError, ToolUnavailableError
from .models import MediaProbe

logger = logging.getLogger(__name__)


def is_remote(source: str) -> bool:
    return source.startswith("http://") or source.startswith("https://")


def protocol_args(source: str) -> List[str]:
    """Reconnect/timeout options for HTTP sources (shared with ffmpeg)."""
    if is_remote(source):
        return [
            "-reconnect", "1",
            "-reconnect_streamed", "1",
            "-reconnect_delay_max", "5",
            "-rw_timeout", "30000000",
        ]
    return []


def parse_frame_rate(value: Optional[str]) -> float:
    """Parse an ffprobe rate such as ``30000/1001`` without eval."""
    if not value:
        return 0.0
    try:
        rate = Fraction(value)
    except (ValueError, ZeroDivisionError):
        return 0.0
    return round(float(rate), 3)


def _to_float(value: Any) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        return 0.0


def _to_int(value: Any) -> int:
    try:
        return int(float(value))
    except (TypeError, ValueError):
        return 0


def parse_probe_output(data: Dict[str, Any]) -> MediaProbe:
    """
    Build a MediaProbe from ffprobe's JSON document.
    
    Raises:
        ProbeError: if there is no video stream
    """
    fmt = data.get("format") or {}
    streams = data.get("streams") or []
    
    video = next((s for s in streams if s.get("codec_type") == "video"), None)
    audio = next((s for s in streams if s.get("codec_type") == "audio"), None)
    
    if video is None:
        raise ProbeError("No video stream found")
    
    # Some containers only report duration on the stream
    duration = _to_float(fmt.get("duration")) or _to_float(video.get("duration"))
    
    framerate = parse_frame_rate(video.get("r_frame_rate"))
    if framerate <= 0:
        framerate = parse_frame_rate(video.get("avg_frame_rate"))
    
    return MediaProbe(
        duration_seconds=duration,
        width=_to_int(video.get("width")),
        height=_to_int(video.get("height")),
        bitrate_bps=_to_int(fmt.get("bit_rate")),
        framerate=framerate,
        container_format=fmt.get("format_name") or "",
        video_codec=video.get("codec_name") or "",
        audio_codec=(audio or {}).get("codec_name") or "",
    )


class MediaInspector:
    """Runs ffprobe in metadata-only mode."""
    
    def __init__(self, ffprobe_path: str):
        self.ffprobe_path = ffprobe_path
    
    def build_command(self, source: str) -> List[str]:
        return [
            self.ffprobe_path,
            "-v", "error",
            *protocol_args(source),
            "-print_format", "json",
            "-show_format",
            "-show_streams",
            source,
        ]
    
    async def probe(self, source: str) -> MediaProbe:
        """
        Inspect ``source`` and return its metadata.
        
        Raises:
            ToolUnavailableError: ffprobe cannot be executed
            ProbeError: non-zero exit, unparsable output, or no video stream
        """
        cmd = self.build_command(source)
        logger.debug(f"[Probe] Running: {' '.join(cmd)}")
        
        try:
            process = await asyncio.create_subprocess_exec(
                *cmd,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except (FileNotFoundError, PermissionError) as e:
            raise ToolUnavailableError("ffprobe", str(e)) from e
        
        stdout, stderr = await process.communicate()
        stderr_text = stderr.decode("utf-8", errors="ignore").strip()
        
        if process.returncode != 0:
            raise ProbeError(
                f"ffprobe exited with code {process.returncode}: {stderr_text[-500:]}",
                stderr=stderr_text,
                exit_code=process.returncode,
            )
        
        try:
            data = json.loads(stdout.decode("utf-8", errors="ignore") or "")
        except json.JSONDecodeError as e:
            raise ProbeError(f"ffprobe produced invalid JSON: {e}", stderr=stderr_text) from e
        
        if not isinstance(data, dict):
            raise ProbeError("ffprobe produced unexpected output", stderr=stderr_text)
        
        probe = parse_probe_output(data)
        logger.info(
            f"[Probe] {source}: {probe.width}x{probe.height} "
            f"{probe.duration_seconds:.1f}s {probe.video_codec}/{probe.audio_codec or 'no audio'}"
        )
        return probe
