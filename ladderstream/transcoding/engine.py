"""
Transcoding engine: runs one ffmpeg invocation per call.
"""

import asyncio
import collections
import logging
import os
import shutil
import signal
import subprocess
import sys
from pathlib import Path
from typing import Any, Callable, Deque, Dict, List, Optional

from ..config import LadderStreamConfig, get_config
from ..errors import EncodeError, ToolUnavailableError
from ..models import WatermarkOptions
from .commands import CommandBuilder
from .constants import (
    PREVIEW_NAME,
    SEGMENT_PATTERN,
    THUMBNAIL_DIR_NAME,
    THUMBNAIL_PATTERN,
    VARIANT_PLAYLIST_NAME,
)
from .encoders import EncoderSelector
from .error_classifier import ErrorClassifier
from .models import MediaProbe, TranscodeOptions, TranscodeProgress, TranscodeResult, VariantSpec
from .planner import fit_within
from .probe import MediaInspector
from .progress import KeyValueProgressParser, ProgressParser, compute_percent

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[TranscodeProgress], None]


def thumbnail_timestamps(duration: float, count: int) -> List[float]:
    """
    Evenly spaced timestamps strictly inside (0, duration).

    ``duration / (count + 1) * i`` for ``i = 1..count``, which avoids the
    first and last frame.
    """
    if count <= 0 or duration <= 0:
        return []
    interval = duration / (count + 1)
    return [interval * i for i in range(1, count + 1)]


def resolve_tool(configured: str, name: str) -> str:
    """
    Locate an executable.

    Raises:
        ToolUnavailableError: the binary cannot be found
    """
    candidate = name if configured in ("", "auto") else configured
    found = shutil.which(candidate)
    if found:
        return found
    if os.path.isfile(candidate) and os.access(candidate, os.X_OK):
        return candidate
    raise ToolUnavailableError(name, f"'{candidate}' not found")


class TranscodeEngine:
    """FFmpeg-based engine. Each public coroutine runs one stage of a job."""

    def __init__(
        self,
        config: Optional[LadderStreamConfig] = None,
        parser_factory: Callable[[], ProgressParser] = KeyValueProgressParser
    ):
        self.config = config or get_config()
        self.transcoding = self.config.transcoding
        self.parser_factory = parser_factory
        self.encoder_selector = EncoderSelector()
        self.classifier = ErrorClassifier()
        self._ffmpeg_path: Optional[str] = None
        self._ffprobe_path: Optional[str] = None
        self._command_builder: Optional[CommandBuilder] = None

    @property
    def ffmpeg_path(self) -> str:
        """Resolved ffmpeg path (looked up on first use)."""
        if self._ffmpeg_path is None:
            self._ffmpeg_path = resolve_tool(self.transcoding.ffmpeg_path, "ffmpeg")
        return self._ffmpeg_path

    @property
    def ffprobe_path(self) -> str:
        if self._ffprobe_path is None:
            self._ffprobe_path = resolve_tool(self.transcoding.ffprobe_path, "ffprobe")
        return self._ffprobe_path

    @property
    def command_builder(self) -> CommandBuilder:
        if self._command_builder is None:
            self._command_builder = CommandBuilder(
                self.ffmpeg_path,
                self.encoder_selector,
                self.transcoding
            )
        return self._command_builder

    async def probe(self, source: str) -> MediaProbe:
        """Inspect the source with ffprobe."""
        return await MediaInspector(self.ffprobe_path).probe(source)

    async def _graceful_terminate(self, process: asyncio.subprocess.Process) -> None:
        """
        Terminate ffmpeg, escalating SIGINT -> SIGTERM -> SIGKILL.

        SIGINT lets ffmpeg finalize the current segment before exiting.
        """
        if process.returncode is not None:
            return

        try:
            if sys.platform == "win32":
                process.send_signal(signal.CTRL_BREAK_EVENT)
            else:
                process.send_signal(signal.SIGINT)
        except (ProcessLookupError, OSError):
            pass

        try:
            await asyncio.wait_for(process.wait(), timeout=5.0)
            logger.debug("[Transcode] FFmpeg terminated gracefully")
            return
        except asyncio.TimeoutError:
            pass

        try:
            process.terminate()
            await asyncio.wait_for(process.wait(), timeout=3.0)
            logger.debug("[Transcode] FFmpeg terminated with SIGTERM")
            return
        except (asyncio.TimeoutError, ProcessLookupError, OSError):
            pass

        try:
            process.kill()
            await process.wait()
            logger.warning("[Transcode] FFmpeg killed forcefully")
        except (ProcessLookupError, OSError):
            pass

    async def _run_ffmpeg(
        self,
        cmd: List[str],
        duration: float,
        progress_callback: Optional[ProgressCallback],
        stage: str = "transcoding"
    ) -> None:
        """
        Run one ffmpeg process to completion.

        Progress is read from stdout through the progress parser and
        reported as a monotonic percentage of ``duration``. stderr is
        drained concurrently and its tail kept for error reporting.

        Raises:
            ToolUnavailableError: ffmpeg could not be executed
            EncodeError: ffmpeg exited with a non-zero code
        """
        logger.info(f"[Transcode] Running FFmpeg ({stage}): {' '.join(cmd[:12])}...")

        kwargs: Dict[str, Any] = {
            "stdout": asyncio.subprocess.PIPE,
            "stderr": asyncio.subprocess.PIPE,
        }
        if sys.platform == "win32":
            kwargs["creationflags"] = subprocess.CREATE_NEW_PROCESS_GROUP

        try:
            process = await asyncio.create_subprocess_exec(*cmd, **kwargs)
        except (FileNotFoundError, PermissionError) as e:
            raise ToolUnavailableError("ffmpeg", str(e)) from e

        parser = self.parser_factory()
        progress = TranscodeProgress(stage=stage)
        stderr_tail: Deque[str] = collections.deque(maxlen=self.transcoding.stderr_tail_lines)

        def report() -> None:
            if progress_callback is None:
                return
            try:
                progress_callback(progress)
            except Exception as e:
                logger.warning(f"[Transcode] Progress callback error: {e}")

        async def read_stdout():
            while True:
                line = await process.stdout.readline()
                if not line:
                    break
                if parser.feed(line.decode("utf-8", errors="ignore"), progress):
                    # Never report backwards, and hold 100 until exit code is known
                    percent = min(99.9, compute_percent(progress.time, duration))
                    if percent > progress.percent:
                        progress.percent = percent
                        report()

        async def read_stderr():
            while True:
                line = await process.stderr.readline()
                if not line:
                    break
                text = line.decode("utf-8", errors="ignore").rstrip()
                if text:
                    stderr_tail.append(text)

        try:
            await asyncio.gather(read_stdout(), read_stderr())
            await process.wait()
        except asyncio.CancelledError:
            logger.info(f"[Transcode] {stage} cancelled, terminating FFmpeg")
            await self._graceful_terminate(process)
            raise

        if process.returncode != 0:
            tail = "\n".join(stderr_tail)
            raise EncodeError(
                f"FFmpeg {stage} exited with code {process.returncode}",
                exit_code=process.returncode,
                stderr_tail=tail,
                description=self.classifier.get_error_description(tail),
            )

        progress.percent = 100.0
        progress.done = True
        report()

    def _validate_file_output(self, output: Path) -> None:
        if not output.exists():
            raise EncodeError(f"Output file not found: {output}")
        if output.stat().st_size == 0:
            raise EncodeError(f"Output file is empty: {output}")

    def _validate_hls_output(self, playlist: Path) -> None:
        """Check the playlist exists and references at least one non-empty segment."""
        self._validate_file_output(playlist)

        segments = [
            line.strip() for line in playlist.read_text(errors="ignore").splitlines()
            if line.strip() and not line.startswith("#")
        ]
        if not segments:
            raise EncodeError(f"Playlist {playlist} lists no segments")

        first = playlist.parent / segments[0]
        if not first.exists() or first.stat().st_size == 0:
            raise EncodeError(f"Segment {segments[0]} missing or empty")

    async def transcode(
        self,
        source: str,
        output: Path,
        options: TranscodeOptions,
        progress_callback: Optional[ProgressCallback] = None,
        duration: float = 0.0,
        watermark: Optional[WatermarkOptions] = None,
        stage: str = "transcoding"
    ) -> Path:
        """
        Encode ``source`` into ``output`` according to ``options``.

        Args:
            source: Input path or URL
            output: Output file (the playlist for HLS output)
            options: Encoding options
            progress_callback: Receives TranscodeProgress updates
            duration: Probed duration, used to compute percentages
            watermark: Optional text watermark
            stage: Label used in logs and progress updates

        Returns:
            The output path
        """
        output = Path(output)
        output.parent.mkdir(parents=True, exist_ok=True)
        if options.container != "hls":
            # A leftover file from an earlier run would pass validation
            output.unlink(missing_ok=True)

        cmd = self.command_builder.build_transcode_command(source, output, options, watermark)
        await self._run_ffmpeg(cmd, duration, progress_callback, stage)

        if options.container == "hls":
            self._validate_hls_output(output)
        else:
            self._validate_file_output(output)
        return output

    async def build_segmented_output(
        self,
        source: str,
        out_dir: Path,
        variant: VariantSpec,
        progress_callback: Optional[ProgressCallback] = None,
        duration: float = 0.0,
        watermark: Optional[WatermarkOptions] = None
    ) -> TranscodeResult:
        """
        Produce one HLS rendition plus its sub-manifest.

        Output goes to ``out_dir/<variant.name>/index.m3u8`` with segments
        beside it.
        """
        variant_dir = Path(out_dir) / variant.name
        variant_dir.mkdir(parents=True, exist_ok=True)

        # Stale segments from an earlier run would mask a failed encode
        for stale in variant_dir.glob(SEGMENT_PATTERN.replace("%03d", "*")):
            stale.unlink()

        playlist = variant_dir / VARIANT_PLAYLIST_NAME
        options = TranscodeOptions.for_variant(variant, self.transcoding.segment_duration)

        await self.transcode(
            source, playlist, options, progress_callback, duration, watermark,
            stage=f"variant {variant.name}"
        )
        logger.info(f"[Transcode] Variant {variant.name} ({variant.resolution}) complete")
        return TranscodeResult(variant=variant, output_path=str(playlist), success=True)

    async def create_preview(
        self,
        source: str,
        out_dir: Path,
        probe: MediaProbe,
        preview_duration: float,
        progress_callback: Optional[ProgressCallback] = None,
        watermark: Optional[WatermarkOptions] = None
    ) -> Path:
        """Encode a short MP4 preview from the start of the source."""
        options = self.preview_options(probe, preview_duration)
        output = Path(out_dir) / PREVIEW_NAME
        return await self.transcode(
            source, output, options, progress_callback, options.max_duration, watermark,
            stage="preview"
        )

    def preview_options(self, probe: MediaProbe, preview_duration: float) -> TranscodeOptions:
        """Preview encode settings: at most the configured box, never larger than the source."""
        clip_length = preview_duration
        if probe.duration_seconds > 0:
            clip_length = min(preview_duration, probe.duration_seconds)

        width, height = fit_within(
            probe.width, probe.height,
            self.transcoding.preview_max_width, self.transcoding.preview_max_height
        )
        return TranscodeOptions(
            video_codec="libx264",
            width=width,
            height=height,
            fit_within=True,
            preset=self.transcoding.preview_preset,
            crf=self.transcoding.preview_crf,
            fps=min(30.0, probe.framerate) if probe.framerate > 0 else None,
            container="mp4",
            max_duration=clip_length,
        )

    async def extract_thumbnails(
        self,
        source: str,
        out_dir: Path,
        count: int,
        duration: float,
        progress_callback: Optional[ProgressCallback] = None
    ) -> List[str]:
        """
        Extract ``count`` evenly spaced frames as JPEG thumbnails.

        One ffmpeg invocation per thumbnail. A single failure fails the
        whole step; partial sets are never returned.

        Returns:
            Thumbnail paths in timestamp order
        """
        if count <= 0:
            return []
        if duration <= 0:
            raise EncodeError("Cannot place thumbnails: source duration is unknown")

        thumb_dir = Path(out_dir) / THUMBNAIL_DIR_NAME
        thumb_dir.mkdir(parents=True, exist_ok=True)

        thumbnails: List[str] = []
        timestamps = thumbnail_timestamps(duration, count)
        for index, timestamp in enumerate(timestamps, start=1):
            output = thumb_dir / THUMBNAIL_PATTERN.format(index=index)
            output.unlink(missing_ok=True)
            cmd = self.command_builder.build_thumbnail_command(source, output, timestamp)
            await self._run_ffmpeg(cmd, 0.0, None, stage=f"thumbnail {index}")
            self._validate_file_output(output)
            thumbnails.append(str(output))

            if progress_callback:
                progress_callback(TranscodeProgress(
                    stage="thumbnails",
                    time=timestamp,
                    percent=index / len(timestamps) * 100.0,
                    done=index == len(timestamps),
                ))

        logger.info(f"[Transcode] Extracted {len(thumbnails)} thumbnails")
        return thumbnails
