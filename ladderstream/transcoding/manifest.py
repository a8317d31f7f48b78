"""
HLS master manifest generation.
"""

import logging
import os
import tempfile
from pathlib import Path
from typing import List, Sequence

from ..errors import ManifestError
from .constants import HLS_VERSION, MASTER_PLAYLIST_NAME
from .models import TranscodeResult

logger = logging.getLogger(__name__)


def _relative_uri(out_dir: Path, playlist: str) -> str:
    """Playlist URI relative to the master manifest, always with forward slashes."""
    try:
        rel = Path(playlist).resolve().relative_to(Path(out_dir).resolve())
    except ValueError:
        # Outside out_dir; fall back to the conventional layout
        rel = Path(Path(playlist).parent.name) / Path(playlist).name
    return rel.as_posix()


def render_master_playlist(out_dir: Path, results: Sequence[TranscodeResult]) -> str:
    """Render master playlist text for the successful variants, in the given order."""
    lines = ["#EXTM3U", f"#EXT-X-VERSION:{HLS_VERSION}", "#EXT-X-INDEPENDENT-SEGMENTS"]
    
    for result in results:
        if not result.success:
            continue
        variant = result.variant
        lines.append(
            f"#EXT-X-STREAM-INF:BANDWIDTH={variant.bandwidth_bps},"
            f"AVERAGE-BANDWIDTH={variant.average_bandwidth_bps},"
            f"RESOLUTION={variant.resolution},"
            f"NAME=\"{variant.name}\""
        )
        lines.append(_relative_uri(out_dir, result.output_path))
    
    return "\n".join(lines) + "\n"


def build_manifest(out_dir: Path, results: Sequence[TranscodeResult]) -> str:
    """
    Write the master manifest listing every successful variant.
    
    Failed variants are left out; they remain visible in the job result.
    The file is replaced atomically so readers never see a partial manifest.
    
    Raises:
        ManifestError: no variant succeeded
    
    Returns:
        Path of the written manifest
    """
    out_dir = Path(out_dir)
    succeeded: List[TranscodeResult] = [r for r in results if r.success]
    if not succeeded:
        raise ManifestError(
            f"No variants succeeded ({len(results)} attempted), nothing to put in the manifest"
        )
    
    content = render_master_playlist(out_dir, succeeded)
    out_dir.mkdir(parents=True, exist_ok=True)
    master_path = out_dir / MASTER_PLAYLIST_NAME
    
    fd, tmp_name = tempfile.mkstemp(prefix=".master-", suffix=".m3u8", dir=str(out_dir))
    try:
        with os.fdopen(fd, "w", encoding="utf-8", newline="\n") as f:
            f.write(content)
        os.replace(tmp_name, master_path)
    except BaseException:
        Path(tmp_name).unlink(missing_ok=True)
        raise
    
    skipped = len(results) - len(succeeded)
    logger.info(
        f"[Manifest] Wrote {master_path} with {len(succeeded)} variant(s)"
        + (f", {skipped} failed variant(s) excluded" if skipped else "")
    )
    return str(master_path)
