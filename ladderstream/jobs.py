"""
Job queue and management for LadderStream
"""

import asyncio
import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Coroutine, Dict, List, Optional, Set

import httpx

from .config import LadderStreamConfig, get_config
from .errors import (
    DuplicateJobError,
    JobCancelledError,
    ManifestError,
    PipelineError,
    ProbeError,
    ToolUnavailableError,
)
from .models import JobStatus, JobStatusResponse, ProcessingOptions
from .pipeline import VideoPipeline
from .transcoding.engine import TranscodeEngine
from .transcoding.models import PipelineResult

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class Job:
    """
    A single processing request.

    Once a worker has picked a job up, only that worker mutates it.
    """
    id: str
    source: str
    output_dir: str
    options: ProcessingOptions
    status: JobStatus = JobStatus.QUEUED
    progress: float = 0.0
    stage: Optional[str] = None
    error_detail: Optional[str] = None
    result: Optional[PipelineResult] = None
    created_at: datetime = field(default_factory=_utcnow)
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    done_event: asyncio.Event = field(default_factory=asyncio.Event)

    def to_status_response(self) -> JobStatusResponse:
        return JobStatusResponse(
            job_id=self.id,
            status=self.status,
            progress=self.progress,
            stage=self.stage,
            source=self.source,
            output_dir=self.output_dir,
            error_detail=self.error_detail,
            result=self.result.to_dict() if self.result else None,
            created_at=self.created_at,
            started_at=self.started_at,
            completed_at=self.completed_at,
        )


class JobStats:
    """Statistics for job processing."""

    def __init__(self):
        self.total_jobs_processed: int = 0
        self.successful_jobs: int = 0
        self.failed_jobs: int = 0
        self.cancelled_jobs: int = 0
        self.degraded_jobs: int = 0
        self.total_processing_time: float = 0.0
        self.start_time: datetime = _utcnow()

    def record_job_complete(self, job: Job) -> None:
        """Record job completion stats."""
        self.total_jobs_processed += 1

        if job.status == JobStatus.CANCELLED:
            self.cancelled_jobs += 1
        elif job.status == JobStatus.COMPLETED:
            self.successful_jobs += 1
            if job.error_detail:
                self.degraded_jobs += 1
        else:
            self.failed_jobs += 1

        if job.started_at and job.completed_at:
            self.total_processing_time += (job.completed_at - job.started_at).total_seconds()

    @property
    def average_processing_time(self) -> float:
        if self.successful_jobs > 0:
            return self.total_processing_time / self.successful_jobs
        return 0.0

    @property
    def uptime_seconds(self) -> float:
        return (_utcnow() - self.start_time).total_seconds()


def _degraded_summary(result: PipelineResult) -> Optional[str]:
    parts = [f"{stage} failed: {error}" for stage, error in result.stage_errors]
    parts.extend(f"variant {r.name} failed: {r.error}" for r in result.failed_variants)
    if not parts:
        return None
    return "Completed with degraded output; " + "; ".join(parts)


class JobQueue:
    """
    Registry of jobs plus a bounded pool of workers that run them.

    Create one per service, ``await start()`` it, and ``await stop()`` it
    on shutdown (or use it as an async context manager).
    """

    def __init__(
        self,
        config: Optional[LadderStreamConfig] = None,
        engine: Optional[TranscodeEngine] = None
    ):
        self.config = config or get_config()
        self.engine = engine or TranscodeEngine(self.config)
        self.pipeline = VideoPipeline(self.engine, self.config)
        self.jobs: Dict[str, Job] = {}
        self.queue: "asyncio.Queue[Job]" = asyncio.Queue()
        self.active_jobs: Set[str] = set()
        self.stats = JobStats()
        self.progress_callbacks: List[Callable[[str, float, str], None]] = []
        self.status_callbacks: List[Callable[[str, JobStatus], None]] = []
        self._workers: List[asyncio.Task] = []
        self._cleanup_task: Optional[asyncio.Task] = None
        self._background: Set[asyncio.Task] = set()
        self._running = False

    async def __aenter__(self) -> "JobQueue":
        await self.start()
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.stop()

    @property
    def running(self) -> bool:
        return self._running

    async def start(self) -> None:
        """Start the workers and the eviction loop."""
        if self._running:
            return

        self._running = True
        max_workers = self.config.transcoding.max_concurrent_jobs

        for i in range(max_workers):
            self._workers.append(asyncio.create_task(self._worker(i)))

        self._cleanup_task = asyncio.create_task(self._cleanup_loop())

        logger.info(f"[Jobs] Started {max_workers} job workers + cleanup task")

    async def stop(self) -> None:
        """Stop all workers. Jobs still queued are cancelled."""
        if not self._running:
            return
        self._running = False

        if self._cleanup_task:
            self._cleanup_task.cancel()
            await asyncio.gather(self._cleanup_task, return_exceptions=True)
            self._cleanup_task = None

        for worker in self._workers:
            worker.cancel()
        await asyncio.gather(*self._workers, return_exceptions=True)
        self._workers.clear()

        for job in list(self.jobs.values()):
            if job.status == JobStatus.QUEUED:
                job.status = JobStatus.CANCELLED
                job.error_detail = "Job queue stopped before the job started"
                self._finish(job)

        if self._background:
            await asyncio.gather(*self._background, return_exceptions=True)

        logger.info("[Jobs] Job queue stopped")

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def add_job(
        self,
        job_id: Optional[str],
        source: str,
        output_dir: str,
        options: Optional[ProcessingOptions] = None
    ) -> JobStatusResponse:
        """
        Register a job and schedule it on the worker pool.

        Returns immediately with the queued snapshot; processing happens
        in the background.

        Raises:
            DuplicateJobError: a job with this id is queued or processing
            RuntimeError: the queue has not been started
        """
        if not self._running:
            raise RuntimeError("JobQueue is not started")

        job_id = job_id or str(uuid.uuid4())
        existing = self.jobs.get(job_id)
        if existing is not None and not existing.status.is_terminal:
            raise DuplicateJobError(job_id)

        job = Job(
            id=job_id,
            source=source,
            output_dir=str(output_dir),
            options=options or ProcessingOptions(),
        )
        self.jobs[job_id] = job
        self._enforce_capacity()
        self.queue.put_nowait(job)

        logger.info(f"[Jobs] Queued job {job_id} for source: {source}")
        self._notify_status(job_id, JobStatus.QUEUED)
        return job.to_status_response()

    def get_status(self, job_id: str) -> Optional[JobStatusResponse]:
        """Read-only snapshot of a job, or None if unknown."""
        job = self.jobs.get(job_id)
        if job is None:
            return None
        return job.to_status_response()

    def cancel_job(self, job_id: str) -> bool:
        """
        Cancel a job that has not started yet.

        Returns False once the job is processing: a running ffmpeg is not
        preempted and the job runs to completion or error.
        """
        job = self.jobs.get(job_id)
        if job is None:
            return False

        if job.status != JobStatus.QUEUED:
            if job.status == JobStatus.PROCESSING:
                logger.info(f"[Jobs] Job {job_id} is already processing, cannot cancel")
            return False

        job.status = JobStatus.CANCELLED
        job.error_detail = "Cancelled by request before processing started"
        self._finish(job)

        logger.info(f"[Jobs] Cancelled job {job_id}")
        return True

    async def wait_for_job(
        self,
        job_id: str,
        timeout: Optional[float] = None
    ) -> Optional[JobStatusResponse]:
        """
        Wait until a job reaches a terminal state.

        Raises:
            asyncio.TimeoutError: the job did not finish within ``timeout``
        """
        job = self.jobs.get(job_id)
        if job is None:
            return None
        await asyncio.wait_for(job.done_event.wait(), timeout)
        return job.to_status_response()

    def get_result(self, job_id: str) -> Optional[PipelineResult]:
        """
        Result of a completed job; None while it is pending or unknown.

        Raises:
            JobCancelledError: the job was cancelled
            PipelineError: the job ended in error
        """
        job = self.jobs.get(job_id)
        if job is None:
            return None
        if job.status == JobStatus.CANCELLED:
            raise JobCancelledError(job_id)
        if job.status == JobStatus.ERROR:
            raise PipelineError(job_id, job.error_detail)
        return job.result

    def get_queue_length(self) -> int:
        return sum(1 for job in self.jobs.values() if job.status == JobStatus.QUEUED)

    def get_active_count(self) -> int:
        return len(self.active_jobs)

    def list_jobs(self) -> List[JobStatusResponse]:
        return [job.to_status_response() for job in self.jobs.values()]

    def remove_job(self, job_id: str) -> bool:
        """Drop a finished job from the registry. Output files are left alone."""
        job = self.jobs.get(job_id)
        if job is None or not job.status.is_terminal:
            return False
        del self.jobs[job_id]
        logger.debug(f"[Jobs] Removed job {job_id} from tracking")
        return True

    def register_progress_callback(self, callback: Callable[[str, float, str], None]) -> None:
        self.progress_callbacks.append(callback)

    def register_status_callback(self, callback: Callable[[str, JobStatus], None]) -> None:
        self.status_callbacks.append(callback)

    # ------------------------------------------------------------------
    # Workers
    # ------------------------------------------------------------------

    async def _worker(self, worker_id: int) -> None:
        """Worker coroutine that processes jobs from the queue."""
        logger.debug(f"[Jobs] Worker {worker_id} started")

        while True:
            try:
                job = await self.queue.get()
            except asyncio.CancelledError:
                break

            # Cancelled, evicted or replaced while waiting in the queue
            if self.jobs.get(job.id) is not job or job.status != JobStatus.QUEUED:
                self.queue.task_done()
                continue

            self.active_jobs.add(job.id)
            try:
                await self._process_job(job)
            except asyncio.CancelledError:
                break
            finally:
                self.active_jobs.discard(job.id)
                self.queue.task_done()

        logger.debug(f"[Jobs] Worker {worker_id} stopped")

    async def _process_job(self, job: Job) -> None:
        """Run the pipeline for one job and record the outcome."""
        job.status = JobStatus.PROCESSING
        job.started_at = _utcnow()
        self._notify_status(job.id, JobStatus.PROCESSING)

        def progress_callback(percent: float, stage: str) -> None:
            if percent > job.progress:
                job.progress = round(percent, 2)
            job.stage = stage
            self._notify_progress(job.id, job.progress, stage)

        timeout = job.options.timeout_seconds
        run = self.pipeline.run(
            job.source, Path(job.output_dir), job.options, progress_callback
        )

        try:
            if timeout:
                result = await asyncio.wait_for(run, timeout)
            else:
                result = await run
        except asyncio.TimeoutError:
            self._fail(job, f"Job exceeded its deadline of {timeout:g}s")
        except (ToolUnavailableError, ProbeError, ManifestError) as e:
            self._fail(job, str(e))
        except asyncio.CancelledError:
            self._fail(job, "Job queue stopped while the job was processing")
            raise
        except Exception as e:
            logger.exception(f"[Jobs] Unexpected error processing job {job.id}: {e}")
            self._fail(job, f"Unexpected error: {e}")
        else:
            job.result = result
            job.error_detail = _degraded_summary(result)
            job.progress = 100.0
            job.stage = "complete"
            job.status = JobStatus.COMPLETED
            logger.info(
                f"[Jobs] Job {job.id} completed with "
                f"{len(result.successful_variants)}/{len(result.variants)} variants"
            )
            self._finish(job)

    def _fail(self, job: Job, detail: str) -> None:
        logger.error(f"[Jobs] Job {job.id} failed: {detail}")
        job.status = JobStatus.ERROR
        job.error_detail = detail
        self._finish(job)

    def _finish(self, job: Job) -> None:
        """Common bookkeeping for every terminal transition."""
        job.completed_at = _utcnow()
        job.done_event.set()
        self.stats.record_job_complete(job)
        self._notify_status(job.id, job.status)

        if job.options.callback_url:
            self._spawn(self._send_callback(job.options.callback_url, job.to_status_response()))

    def _spawn(self, coro: Coroutine[Any, Any, None]) -> None:
        """Run a supervised background coroutine."""
        try:
            task = asyncio.get_running_loop().create_task(coro)
        except RuntimeError:
            coro.close()
            logger.warning("[Jobs] No running event loop, dropping background task")
            return
        self._background.add(task)
        task.add_done_callback(self._background.discard)

    async def _send_callback(self, url: str, snapshot: JobStatusResponse) -> None:
        """POST the terminal snapshot to the caller's callback URL."""
        try:
            async with httpx.AsyncClient() as client:
                response = await client.post(
                    url,
                    json=snapshot.model_dump(mode="json"),
                    timeout=self.config.jobs.callback_timeout_seconds
                )
                response.raise_for_status()
            logger.info(f"[Jobs] Callback for job {snapshot.job_id} sent to {url}")
        except httpx.HTTPError as e:
            logger.error(f"[Jobs] Failed to send callback for job {snapshot.job_id}: {e}")

    def _notify_progress(self, job_id: str, percent: float, stage: str) -> None:
        for callback in self.progress_callbacks:
            try:
                callback(job_id, percent, stage)
            except Exception as e:
                logger.error(f"[Jobs] Progress callback error: {e}")

    def _notify_status(self, job_id: str, status: JobStatus) -> None:
        for callback in self.status_callbacks:
            try:
                callback(job_id, status)
            except Exception as e:
                logger.error(f"[Jobs] Status callback error: {e}")

    # ------------------------------------------------------------------
    # Eviction
    # ------------------------------------------------------------------

    async def _cleanup_loop(self) -> None:
        """Periodically evict expired jobs."""
        interval = self.config.jobs.cleanup_interval_seconds
        while True:
            try:
                await asyncio.sleep(interval)
                self.evict_expired()
            except asyncio.CancelledError:
                break
            except Exception as e:
                logger.error(f"[Cleanup] Error in cleanup loop: {e}")

    def evict_expired(self, now: Optional[datetime] = None) -> int:
        """Remove terminal jobs that finished more than ``job_ttl_seconds`` ago."""
        now = now or _utcnow()
        ttl = self.config.jobs.job_ttl_seconds

        expired = [
            job_id for job_id, job in self.jobs.items()
            if job.status.is_terminal
            and job.completed_at is not None
            and (now - job.completed_at).total_seconds() > ttl
        ]
        for job_id in expired:
            del self.jobs[job_id]

        if expired:
            logger.info(f"[Cleanup] Evicted {len(expired)} expired job(s)")
        return len(expired)

    def _enforce_capacity(self) -> None:
        """Evict the oldest finished jobs while the registry is over its cap."""
        excess = len(self.jobs) - self.config.jobs.max_retained_jobs
        if excess <= 0:
            return

        finished = sorted(
            (job for job in self.jobs.values() if job.status.is_terminal),
            key=lambda job: job.completed_at or job.created_at
        )
        for job in finished[:excess]:
            del self.jobs[job.id]
            logger.debug(f"[Cleanup] Evicted job {job.id} (registry full)")
