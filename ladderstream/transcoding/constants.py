"""
Constants and presets for transcoding operations.
"""

from typing import List, NamedTuple


class LadderRung(NamedTuple):
    name: str
    width: int
    height: int
    bitrate_kbps: int


# Candidate renditions, ascending quality
QUALITY_LADDER: List[LadderRung] = [
    LadderRung("360p", 640, 360, 800),
    LadderRung("480p", 854, 480, 1200),
    LadderRung("720p", 1280, 720, 2500),
    LadderRung("1080p", 1920, 1080, 5000),
]

# Single rendition produced when the source is smaller than every rung
FALLBACK_NAME = "auto"
FALLBACK_MAX_WIDTH = 854
FALLBACK_MAX_HEIGHT = 480
FALLBACK_BITRATE_KBPS = 1200

DEFAULT_VIDEO_CODEC = "libx264"
DEFAULT_PRESET = "medium"
DEFAULT_PROFILE = "high"
DEFAULT_LEVEL = "4.0"
DEFAULT_FPS = 30.0

MAXRATE_FACTOR = 1.5
BUFSIZE_FACTOR = 2

# Output layout
MASTER_PLAYLIST_NAME = "master.m3u8"
VARIANT_PLAYLIST_NAME = "index.m3u8"
SEGMENT_PATTERN = "segment_%03d.ts"
THUMBNAIL_DIR_NAME = "thumbnails"
THUMBNAIL_PATTERN = "thumbnail_{index}.jpg"
PREVIEW_NAME = "preview.mp4"

HLS_VERSION = 3

# Stage weights for job progress
PROBE_PROGRESS = 5.0
PLAN_PROGRESS = 10.0
