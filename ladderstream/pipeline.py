"""
The per-job processing pipeline: probe, plan, thumbnails, preview,
variants, manifest. Stages run strictly one after another.
"""

import logging
from pathlib import Path
from typing import Callable, List, Optional, Tuple

from .config import LadderStreamConfig, get_config
from .errors import EncodeError
from .models import ProcessingOptions
from .transcoding.constants import PLAN_PROGRESS, PROBE_PROGRESS, VARIANT_PLAYLIST_NAME
from .transcoding.engine import TranscodeEngine
from .transcoding.manifest import build_manifest
from .transcoding.models import PipelineResult, TranscodeProgress, TranscodeResult
from .transcoding.planner import plan_variants

logger = logging.getLogger(__name__)

PipelineProgressCallback = Callable[[float, str], None]


class StageProgress:
    """
    Stage-weighted progress aggregate.

    Probe and plan take fixed shares; the rest is split evenly across the
    remaining stages. Reported values never decrease.
    """

    def __init__(self, callback: Optional[PipelineProgressCallback]):
        self.callback = callback
        self.percent = 0.0
        self._stages: List[str] = []
        self._base = PLAN_PROGRESS

    def report(self, percent: float, stage: str) -> None:
        # 100 is reserved for a written manifest
        ceiling = 100.0 if stage == "complete" else 99.9
        percent = max(self.percent, min(ceiling, percent))
        self.percent = percent
        if self.callback:
            self.callback(percent, stage)

    def set_stages(self, stages: List[str]) -> None:
        self._stages = list(stages)

    def stage_span(self) -> float:
        if not self._stages:
            return 0.0
        return (100.0 - self._base) / len(self._stages)

    def stage_start(self, stage: str) -> float:
        return self._base + self._stages.index(stage) * self.stage_span()

    def tracker(self, stage: str) -> Callable[[TranscodeProgress], None]:
        """Callback that maps an encoder's 0-100 onto this stage's share."""
        start = self.stage_start(stage)
        span = self.stage_span()

        def on_progress(progress: TranscodeProgress) -> None:
            fraction = max(0.0, min(100.0, progress.percent)) / 100.0
            self.report(start + span * fraction, stage)

        return on_progress

    def finish_stage(self, stage: str) -> None:
        self.report(self.stage_start(stage) + self.stage_span(), stage)


class VideoPipeline:
    """Runs every stage of one job against a TranscodeEngine."""

    def __init__(self, engine: TranscodeEngine, config: Optional[LadderStreamConfig] = None):
        self.engine = engine
        self.config = config or get_config()

    async def run(
        self,
        source: str,
        output_dir: Path,
        options: ProcessingOptions,
        progress_callback: Optional[PipelineProgressCallback] = None
    ) -> PipelineResult:
        """
        Process ``source`` into ``output_dir``.

        Thumbnail, preview and per-variant encode failures are recorded
        and do not stop the remaining stages.

        Raises:
            ToolUnavailableError: ffmpeg/ffprobe cannot be executed
            ProbeError: the source cannot be inspected
            ManifestError: no variant could be encoded
        """
        output_dir = Path(output_dir)
        progress = StageProgress(progress_callback)
        watermark = options.watermark

        progress.report(0.0, "probing")
        probe = await self.engine.probe(source)
        if probe.duration_seconds <= 0:
            logger.warning(f"[Pipeline] {source} reports no duration, progress will be coarse")
        progress.report(PROBE_PROGRESS, "probing")

        variants = plan_variants(
            probe.width, probe.height, probe.duration_seconds, framerate=probe.framerate
        )
        progress.report(PLAN_PROGRESS, "planning")
        logger.info(f"[Pipeline] Planned variants: {', '.join(v.name for v in variants)}")

        stages: List[str] = []
        if options.wants_thumbnails:
            stages.append("thumbnails")
        if options.generate_preview:
            stages.append("preview")
        stages.extend(f"variant:{v.name}" for v in variants)
        progress.set_stages(stages)

        output_dir.mkdir(parents=True, exist_ok=True)
        stage_errors: List[Tuple[str, str]] = []

        thumbnails: List[str] = []
        if options.wants_thumbnails:
            try:
                thumbnails = await self.engine.extract_thumbnails(
                    source, output_dir, options.thumbnail_count,
                    probe.duration_seconds, progress.tracker("thumbnails")
                )
            except EncodeError as e:
                logger.warning(f"[Pipeline] Thumbnail extraction failed: {e}")
                stage_errors.append(("thumbnails", str(e)))
            progress.finish_stage("thumbnails")

        preview_path: Optional[str] = None
        if options.generate_preview:
            try:
                preview = await self.engine.create_preview(
                    source, output_dir, probe, options.preview_duration_seconds,
                    progress.tracker("preview"), watermark
                )
                preview_path = str(preview)
            except EncodeError as e:
                logger.warning(f"[Pipeline] Preview generation failed: {e}")
                stage_errors.append(("preview", str(e)))
            progress.finish_stage("preview")

        results: List[TranscodeResult] = []
        for variant in variants:
            stage = f"variant:{variant.name}"
            try:
                result = await self.engine.build_segmented_output(
                    source, output_dir, variant, progress.tracker(stage),
                    probe.duration_seconds, watermark
                )
            except EncodeError as e:
                logger.warning(f"[Pipeline] Variant {variant.name} failed: {e}")
                result = TranscodeResult(
                    variant=variant,
                    output_path=str(output_dir / variant.name / VARIANT_PLAYLIST_NAME),
                    success=False,
                    error=str(e),
                )
            results.append(result)
            progress.finish_stage(stage)

        manifest_path = build_manifest(output_dir, results)
        progress.report(100.0, "complete")

        return PipelineResult(
            manifest_path=manifest_path,
            thumbnails=tuple(thumbnails),
            preview_path=preview_path,
            variants=tuple(results),
            stage_errors=tuple(stage_errors),
        )
