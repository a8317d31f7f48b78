"""
Parsing of ffmpeg progress output.

The engine only talks to the ProgressParser interface, so the matching
strategy can be swapped (or stubbed in tests) without touching process
handling.
"""

import re
from typing import Optional

from .models import TranscodeProgress


def parse_clock(value: str) -> Optional[float]:
    """Parse HH:MM:SS.ms or MM:SS.ms into seconds. Returns None if invalid."""
    match = re.fullmatch(r"\s*(\d+):(\d+):(\d+(?:\.\d*)?)\s*", value)
    if match:
        h, m, s = match.groups()
        return int(h) * 3600 + int(m) * 60 + float(s)
    match = re.fullmatch(r"\s*(\d+):(\d+(?:\.\d*)?)\s*", value)
    if match:
        m, s = match.groups()
        return int(m) * 60 + float(s)
    return None


def compute_percent(elapsed: float, duration: float) -> float:
    """Percentage of ``duration`` covered by ``elapsed``, clamped to 0..100."""
    if duration <= 0 or elapsed <= 0:
        return 0.0
    return max(0.0, min(100.0, elapsed / duration * 100.0))


class ProgressParser:
    """
    Interface for turning ffmpeg output lines into progress updates.
    
    ``feed`` updates ``progress`` in place and returns True when a
    complete update is available and should be reported.
    """
    
    def feed(self, line: str, progress: TranscodeProgress) -> bool:
        raise NotImplementedError


class KeyValueProgressParser(ProgressParser):
    """
    Parser for ``-progress pipe:1`` output.
    
    ffmpeg writes blocks of ``key=value`` lines, each block terminated by
    ``progress=continue`` or ``progress=end``.
    """
    
    def feed(self, line: str, progress: TranscodeProgress) -> bool:
        key, sep, value = line.strip().partition("=")
        if not sep:
            return False
        value = value.strip()
        
        if key in ("out_time_us", "out_time_ms"):
            # Both keys are microseconds in every ffmpeg release
            try:
                micros = int(value)
            except ValueError:
                return False
            if micros >= 0:
                progress.time = micros / 1_000_000
        elif key == "out_time":
            seconds = parse_clock(value)
            if seconds is not None:
                progress.time = seconds
        elif key == "frame":
            try:
                progress.frame = int(value)
            except ValueError:
                pass
        elif key == "fps":
            try:
                progress.fps = float(value)
            except ValueError:
                pass
        elif key == "speed":
            match = re.match(r"([\d.]+)x", value)
            if match:
                try:
                    progress.speed = float(match.group(1))
                except ValueError:
                    pass
        elif key == "progress":
            progress.done = value == "end"
            return True
        
        return False
