"""
Data models for transcoding operations.
"""

from dataclasses import dataclass, asdict
from typing import Any, Dict, List, Optional, Tuple


@dataclass(frozen=True)
class MediaProbe:
    """Result of a metadata-only inspection of a source."""
    duration_seconds: float = 0.0
    width: int = 0
    height: int = 0
    bitrate_bps: int = 0
    framerate: float = 0.0
    container_format: str = ""
    video_codec: str = ""
    audio_codec: str = ""
    
    @property
    def has_audio(self) -> bool:
        return bool(self.audio_codec)


@dataclass(frozen=True)
class VariantSpec:
    """A planned rendition of the source."""
    name: str
    width: int
    height: int
    target_bitrate_kbps: int
    codec: str = "libx264"
    preset: str = "medium"
    maxrate_kbps: int = 0
    bufsize_kb: int = 0
    fps: float = 30.0
    profile: str = "high"
    level: str = "4.0"
    
    @property
    def resolution(self) -> str:
        return f"{self.width}x{self.height}"
    
    @property
    def bandwidth_bps(self) -> int:
        """Peak bandwidth advertised in the master manifest."""
        return (self.maxrate_kbps or self.target_bitrate_kbps) * 1000
    
    @property
    def average_bandwidth_bps(self) -> int:
        return self.target_bitrate_kbps * 1000


@dataclass(frozen=True)
class TranscodeResult:
    """Outcome of encoding one variant."""
    variant: VariantSpec
    output_path: str
    success: bool
    error: Optional[str] = None
    
    @property
    def name(self) -> str:
        return self.variant.name
    
    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "output_path": self.output_path,
            "success": self.success,
            "error": self.error,
            "width": self.variant.width,
            "height": self.variant.height,
            "bitrate_kbps": self.variant.target_bitrate_kbps,
        }


@dataclass(frozen=True)
class PipelineResult:
    """Final payload of a completed job."""
    manifest_path: str
    thumbnails: Tuple[str, ...] = ()
    preview_path: Optional[str] = None
    variants: Tuple[TranscodeResult, ...] = ()
    stage_errors: Tuple[Tuple[str, str], ...] = ()
    
    @property
    def successful_variants(self) -> List[TranscodeResult]:
        return [r for r in self.variants if r.success]
    
    @property
    def failed_variants(self) -> List[TranscodeResult]:
        return [r for r in self.variants if not r.success]
    
    def to_dict(self) -> Dict[str, Any]:
        return {
            "manifest_path": self.manifest_path,
            "thumbnails": list(self.thumbnails),
            "preview_path": self.preview_path,
            "variants": [r.to_dict() for r in self.variants],
            "stage_errors": dict(self.stage_errors),
        }


@dataclass
class TranscodeOptions:
    """
    Options for a single ffmpeg invocation.
    
    Every value ends up as its own argv element; nothing here is ever
    joined into a shell string.
    """
    video_codec: str = "libx264"
    width: Optional[int] = None
    height: Optional[int] = None
    bitrate_kbps: Optional[int] = None
    maxrate_kbps: Optional[int] = None
    bufsize_kb: Optional[int] = None
    fps: Optional[float] = None
    preset: Optional[str] = None
    crf: Optional[int] = None
    profile: Optional[str] = None
    level: Optional[str] = None
    container: str = "mp4"  # "mp4" or "hls"
    segment_duration: int = 10
    segment_filename: Optional[str] = None
    max_duration: Optional[float] = None
    fit_within: bool = False  # scale to fit width x height keeping aspect
    
    @classmethod
    def for_variant(cls, variant: VariantSpec, segment_duration: int) -> "TranscodeOptions":
        return cls(
            video_codec=variant.codec,
            width=variant.width,
            height=variant.height,
            bitrate_kbps=variant.target_bitrate_kbps,
            maxrate_kbps=variant.maxrate_kbps or None,
            bufsize_kb=variant.bufsize_kb or None,
            fps=variant.fps,
            preset=variant.preset,
            profile=variant.profile,
            level=variant.level,
            container="hls",
            segment_duration=segment_duration,
        )


@dataclass
class TranscodeProgress:
    """Progress of one running ffmpeg process."""
    stage: str = "transcoding"
    time: float = 0.0
    percent: float = 0.0
    frame: int = 0
    fps: float = 0.0
    speed: float = 0.0
    done: bool = False
    
    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)
