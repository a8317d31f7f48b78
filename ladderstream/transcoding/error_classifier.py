"""
FFmpeg error classification.

Turns the tail of ffmpeg's stderr into a category and a short human
readable description that is attached to EncodeError. Nothing is retried
on the basis of a classification; it is diagnostic only.
"""

import logging
from dataclasses import dataclass
from typing import List, Optional, Tuple

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FFmpegError:
    """Represents a classified FFmpeg error."""
    pattern: str
    category: str  # 'input', 'network', 'resource', 'codec', 'output'
    description: str


# Checked in order; more specific patterns first
FFMPEG_ERROR_MAP: List[FFmpegError] = [
    # Input problems
    FFmpegError("moov atom not found", "input", "Invalid or truncated MP4 file"),
    FFmpegError("invalid data found when processing input", "input", "Invalid input data"),
    FFmpegError("no such file or directory", "input", "File not found"),
    FFmpegError("does not contain any stream", "input", "Input has no streams"),
    FFmpegError("stream map '0:v:0' matches no streams", "input", "Input has no video stream"),
    FFmpegError("end of file", "input", "Unexpected end of file"),
    
    # Network problems (HTTP sources)
    FFmpegError("404 not found", "network", "Source not found (HTTP 404)"),
    FFmpegError("403 forbidden", "network", "Access forbidden (HTTP 403)"),
    FFmpegError("connection refused", "network", "Connection refused"),
    FFmpegError("connection reset", "network", "Connection reset"),
    FFmpegError("connection timed out", "network", "Connection timeout"),
    FFmpegError("network is unreachable", "network", "Network unreachable"),
    FFmpegError("server returned", "network", "HTTP server error"),
    FFmpegError("ssl", "network", "SSL/TLS error"),
    
    # Resource problems
    FFmpegError("no space left", "resource", "No disk space"),
    FFmpegError("disk quota", "resource", "Disk quota exceeded"),
    FFmpegError("cannot allocate", "resource", "Memory allocation failed"),
    FFmpegError("out of memory", "resource", "Out of memory"),
    FFmpegError("too many open files", "resource", "File descriptor limit"),
    
    # Codec and filter problems
    FFmpegError("unknown encoder", "codec", "Encoder not available in this ffmpeg build"),
    FFmpegError("encoder not found", "codec", "Encoder not found"),
    FFmpegError("decoder not found", "codec", "Decoder not found"),
    FFmpegError("no such filter", "codec", "Filter not available in this ffmpeg build"),
    FFmpegError("error initializing filter", "codec", "Filter initialization failed"),
    FFmpegError("cannot load font", "codec", "Watermark font could not be loaded"),
    FFmpegError("height not divisible by 2", "codec", "Odd output dimensions"),
    FFmpegError("width not divisible by 2", "codec", "Odd output dimensions"),
    
    # Output problems
    FFmpegError("permission denied", "output", "Permission denied"),
    FFmpegError("could not write header", "output", "Could not write output header"),
    FFmpegError("invalid argument", "output", "Invalid argument"),
]


class ErrorClassifier:
    """Classifies FFmpeg stderr output."""
    
    def __init__(self, error_map: Optional[List[FFmpegError]] = None):
        self.error_map = error_map or FFMPEG_ERROR_MAP
    
    def classify(self, error_msg: str) -> Tuple[Optional[FFmpegError], str]:
        """
        Classify FFmpeg error output using the error map.
        
        Args:
            error_msg: The error message from FFmpeg stderr
            
        Returns:
            Tuple of (matched_error, category). Category is 'unknown' if no match.
        """
        error_lower = error_msg.lower()
        
        for error in self.error_map:
            if error.pattern in error_lower:
                return error, error.category
        
        return None, "unknown"
    
    def get_error_description(self, error_msg: str) -> str:
        """Get human-readable description of the error."""
        error, _ = self.classify(error_msg)
        if error:
            return error.description
        return "Unknown error"
