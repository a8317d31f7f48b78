"""
FFmpeg command building.

Commands are argument vectors assembled from typed options. Caller
supplied values are passed as single argv elements, and the only caller
text that reaches a filter graph (watermark text) is sanitized first.
"""

import logging
import re
from pathlib import Path
from typing import List, Optional

from ..config import TranscodingConfig
from ..models import WatermarkOptions, WatermarkPosition
from .constants import SEGMENT_PATTERN
from .encoders import EncoderSelector
from .models import TranscodeOptions
from .probe import protocol_args

logger = logging.getLogger(__name__)

WATERMARK_MARGIN = 10

_WATERMARK_POSITIONS = {
    WatermarkPosition.TOP_LEFT: (f"{WATERMARK_MARGIN}", f"{WATERMARK_MARGIN}"),
    WatermarkPosition.TOP_RIGHT: (f"w-tw-{WATERMARK_MARGIN}", f"{WATERMARK_MARGIN}"),
    WatermarkPosition.BOTTOM_LEFT: (f"{WATERMARK_MARGIN}", f"h-th-{WATERMARK_MARGIN}"),
    WatermarkPosition.BOTTOM_RIGHT: (f"w-tw-{WATERMARK_MARGIN}", f"h-th-{WATERMARK_MARGIN}"),
    WatermarkPosition.CENTER: ("(w-tw)/2", "(h-th)/2"),
}

# Characters that carry meaning in filter graphs or drawtext expansion
_UNSAFE_TEXT = re.compile(r"[^\w .\-!?@#&+()/]", re.UNICODE)


def sanitize_drawtext(text: str) -> str:
    """Strip characters that could break out of a quoted drawtext value."""
    return _UNSAFE_TEXT.sub("", text).strip()


def format_timestamp(seconds: float) -> str:
    return f"{max(0.0, seconds):.3f}"


class CommandBuilder:
    """Builds FFmpeg commands for transcoding operations."""
    
    def __init__(
        self,
        ffmpeg_path: str,
        encoder_selector: EncoderSelector,
        transcoding_config: TranscodingConfig
    ):
        self.ffmpeg_path = ffmpeg_path
        self.encoder_selector = encoder_selector
        self.transcoding_config = transcoding_config
    
    def _input_args(self, source: str, seek: Optional[float] = None) -> List[str]:
        cmd = [self.ffmpeg_path, "-y", "-hide_banner", "-nostdin", "-loglevel", "error"]
        cmd.extend(protocol_args(source))
        # Seek before input for fast keyframe seeking
        if seek is not None:
            cmd.extend(["-ss", format_timestamp(seek)])
        cmd.extend(["-i", source])
        return cmd
    
    def build_watermark_filter(self, watermark: Optional[WatermarkOptions]) -> Optional[str]:
        """Build a drawtext filter for the watermark, or None if inactive."""
        if watermark is None or not watermark.active:
            return None
        
        text = sanitize_drawtext(watermark.text or "")
        if not text:
            logger.warning("[Commands] Watermark text empty after sanitizing, skipping")
            return None
        
        x, y = _WATERMARK_POSITIONS[watermark.position]
        return (
            f"drawtext=text='{text}':expansion=none"
            f":fontsize={watermark.font_size}"
            f":fontcolor=white@{watermark.opacity:.2f}"
            f":x={x}:y={y}"
        )
    
    def build_video_filters(
        self,
        options: TranscodeOptions,
        watermark: Optional[WatermarkOptions] = None
    ) -> List[str]:
        filters: List[str] = []
        
        if options.width and options.height:
            w, h = options.width, options.height
            if options.fit_within:
                filters.append(
                    f"scale=w={w}:h={h}:force_original_aspect_ratio=decrease:force_divisible_by=2"
                )
            else:
                # Letterbox into the exact advertised resolution
                filters.append(f"scale=w={w}:h={h}:force_original_aspect_ratio=decrease")
                filters.append(f"pad={w}:{h}:(ow-iw)/2:(oh-ih)/2")
                filters.append("setsar=1")
        
        drawtext = self.build_watermark_filter(watermark)
        if drawtext:
            filters.append(drawtext)
        
        return filters
    
    def build_transcode_command(
        self,
        source: str,
        output: Path,
        options: TranscodeOptions,
        watermark: Optional[WatermarkOptions] = None
    ) -> List[str]:
        """
        Build an encode command writing progress to stdout.
        
        For ``container == "hls"`` ``output`` is the variant playlist and
        segments are written next to it.
        """
        video_encoder, video_args = self.encoder_selector.get_video_encoder(
            options.video_codec,
            preset=options.preset,
            profile=options.profile,
            level=options.level,
            crf=options.crf,
        )
        audio_encoder = self.encoder_selector.get_audio_encoder(
            self.transcoding_config.audio_codec
        )
        
        cmd = self._input_args(source)
        cmd.extend(["-progress", "pipe:1", "-nostats"])
        
        if options.max_duration is not None:
            cmd.extend(["-t", format_timestamp(options.max_duration)])
        
        # Map streams explicitly; audio is optional
        cmd.extend(["-map", "0:v:0", "-map", "0:a:0?"])
        
        cmd.extend(["-c:v", video_encoder])
        cmd.extend(video_args)
        
        vf_filters = self.build_video_filters(options, watermark)
        if vf_filters:
            cmd.extend(["-vf", ",".join(vf_filters)])
        
        if options.fps:
            cmd.extend(["-r", f"{options.fps:g}"])
        
        if options.bitrate_kbps:
            cmd.extend(["-b:v", f"{int(options.bitrate_kbps)}k"])
        if options.maxrate_kbps:
            cmd.extend(["-maxrate", f"{int(options.maxrate_kbps)}k"])
        if options.bufsize_kb:
            cmd.extend(["-bufsize", f"{int(options.bufsize_kb)}k"])
        
        # Keyframe every 2 seconds so segments cut cleanly
        gop_size = int((options.fps or 30) * 2)
        cmd.extend(["-g", str(gop_size), "-keyint_min", str(gop_size), "-sc_threshold", "0"])
        
        cmd.extend(["-c:a", audio_encoder])
        if audio_encoder != "copy":
            cmd.extend(["-b:a", self.transcoding_config.audio_bitrate, "-ac", "2"])
        
        if options.container == "hls":
            segment_name = options.segment_filename or SEGMENT_PATTERN
            segment_path = output.parent / segment_name
            cmd.extend([
                "-f", "hls",
                "-hls_time", str(options.segment_duration),
                "-hls_list_size", "0",
                "-hls_playlist_type", "vod",
                "-hls_flags", "independent_segments",
                "-hls_segment_type", "mpegts",
                "-hls_segment_filename", str(segment_path),
            ])
        else:
            cmd.extend(["-movflags", "+faststart", "-f", "mp4"])
        
        cmd.append(str(output))
        return cmd
    
    def build_thumbnail_command(self, source: str, output: Path, timestamp: float) -> List[str]:
        """Build a single-frame extraction at ``timestamp`` seconds."""
        cmd = self._input_args(source, seek=timestamp)
        cmd.extend([
            "-map", "0:v:0",
            "-frames:v", "1",
            "-q:v", str(self.transcoding_config.thumbnail_quality),
            "-f", "image2",
            str(output),
        ])
        return cmd
