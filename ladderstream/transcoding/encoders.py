"""
Encoder selection for video and audio codecs.
"""

import logging
from typing import Dict, List, Optional, Tuple

from ..errors import EncodeError

logger = logging.getLogger(__name__)


# Accepted spellings for each supported software encoder
VIDEO_CODEC_ALIASES: Dict[str, str] = {
    "h264": "libx264",
    "avc": "libx264",
    "libx264": "libx264",
    "h265": "libx265",
    "hevc": "libx265",
    "libx265": "libx265",
    "vp9": "libvpx-vp9",
    "libvpx-vp9": "libvpx-vp9",
}

AUDIO_CODEC_ALIASES: Dict[str, str] = {
    "aac": "aac",
    "mp3": "libmp3lame",
    "libmp3lame": "libmp3lame",
    "opus": "libopus",
    "libopus": "libopus",
    "copy": "copy",
}

# x264/x265 preset names; anything else is ignored
X26X_PRESETS = {
    "ultrafast", "superfast", "veryfast", "faster", "fast",
    "medium", "slow", "slower", "veryslow",
}


class EncoderSelector:
    """Maps codec names to ffmpeg encoders and their quality arguments."""
    
    def get_video_encoder(
        self,
        codec: str,
        preset: Optional[str] = None,
        profile: Optional[str] = None,
        level: Optional[str] = None,
        crf: Optional[int] = None
    ) -> Tuple[str, List[str]]:
        """
        Get the video encoder and its extra args.
        
        Raises:
            EncodeError: codec is not one of the supported encoders
        """
        encoder = VIDEO_CODEC_ALIASES.get((codec or "").lower())
        if encoder is None:
            raise EncodeError(f"Unsupported video codec: {codec!r}")
        
        args: List[str] = []
        if encoder in ("libx264", "libx265"):
            if preset in X26X_PRESETS:
                args.extend(["-preset", preset])
            if encoder == "libx264":
                if profile:
                    args.extend(["-profile:v", profile])
                if level:
                    args.extend(["-level:v", level])
            else:
                # Apple players need the hvc1 tag for HEVC in HLS
                args.extend(["-tag:v", "hvc1"])
            args.extend(["-pix_fmt", "yuv420p"])
        elif encoder == "libvpx-vp9":
            args.extend(["-deadline", "good", "-cpu-used", "4", "-row-mt", "1"])
        
        if crf is not None:
            args.extend(["-crf", str(int(crf))])
        
        return encoder, args
    
    def get_audio_encoder(self, codec: str) -> str:
        """Get the audio encoder, falling back to AAC."""
        encoder = AUDIO_CODEC_ALIASES.get((codec or "").lower())
        if encoder is None:
            logger.warning(f"[Encoders] Unknown audio codec {codec!r}, using aac")
            return "aac"
        return encoder
