"""
Transcoding package for LadderStream.
FFmpeg-driven probing, variant planning, HLS encoding and manifest generation.
"""

from .models import (
    MediaProbe,
    VariantSpec,
    TranscodeResult,
    PipelineResult,
    TranscodeOptions,
    TranscodeProgress,
)
from .constants import QUALITY_LADDER, MASTER_PLAYLIST_NAME
from .planner import plan_variants, fit_within
from .probe import MediaInspector, parse_probe_output
from .progress import (
    ProgressParser,
    KeyValueProgressParser,
    compute_percent,
)
from .encoders import EncoderSelector
from .commands import CommandBuilder
from .error_classifier import ErrorClassifier
from .engine import TranscodeEngine, thumbnail_timestamps
from .manifest import build_manifest

__all__ = [
    # Models
    "MediaProbe",
    "VariantSpec",
    "TranscodeResult",
    "PipelineResult",
    "TranscodeOptions",
    "TranscodeProgress",
    # Constants
    "QUALITY_LADDER",
    "MASTER_PLAYLIST_NAME",
    # Planning
    "plan_variants",
    "fit_within",
    # Probing
    "MediaInspector",
    "parse_probe_output",
    # Progress
    "ProgressParser",
    "KeyValueProgressParser",
    "compute_percent",
    # Classes
    "EncoderSelector",
    "CommandBuilder",
    "ErrorClassifier",
    "TranscodeEngine",
    "thumbnail_timestamps",
    "build_manifest",
]
