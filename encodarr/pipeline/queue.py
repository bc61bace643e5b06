"""Bounded-concurrency processing queue.

Accepts ``(path, profile)`` submissions, holds each one for its profile's
delay, then runs the per-file pipeline (probe → select → encode → relocate)
on a worker pool whose width is the concurrency cap.

Job lifecycle: QUEUED (delay timer running, or waiting for a slot) →
RUNNING → COMPLETED | FAILED.

Key properties:
- submit() never blocks and never raises for a job-level problem
- Delays are wall-clock timers; admission order is the order delays elapse
- The executor's FIFO work queue is the only concurrency limiter
- Stages of one job run strictly in sequence on one worker thread
- Any failure is caught at the job boundary, logged with the job's
  correlation id and published as JobFailed; other jobs are unaffected
- No timeout is imposed on ffmpeg: a hung encode holds its slot
"""

import threading
import concurrent.futures
import logging
import time
from datetime import datetime, timedelta
from typing import Callable, Optional, Set

from encodarr.config.loader import ProfileRegistry
from encodarr.config.models import AppConfig
from encodarr.config.paths import PathResolver
from encodarr.domain.errors import EncodarrError
from encodarr.domain.events import JobCompleted, JobFailed, JobQueued, JobStarted
from encodarr.domain.models import JobStatus, MediaJob
from encodarr.infrastructure.event_bus import EventBus
from encodarr.infrastructure.ffmpeg import FFmpegAdapter
from encodarr.infrastructure.ffprobe import FFprobeAdapter
from encodarr.infrastructure.logging import JobLoggerAdapter, job_logger, new_job_id
from encodarr.pipeline.file_mover import relocate
from encodarr.policy.selection import StreamSelector


class ProcessingQueue:
    """Admission point for encode jobs.

    Args:
        config: AppConfig; ``general.concurrency`` sets the worker pool width.
        event_bus: EventBus for publishing job lifecycle events.
        profiles: ProfileRegistry resolving profile names (unknown → default).
        path_resolver: PathResolver for source, temp and destination paths.
        ffprobe_adapter: FFprobeAdapter used for the analyze stage.
        ffmpeg_adapter: FFmpegAdapter used for the encode stage.
        timer_factory: threading.Timer compatible factory for admission delays.
    """

    def __init__(
        self,
        config: AppConfig,
        event_bus: EventBus,
        profiles: ProfileRegistry,
        path_resolver: PathResolver,
        ffprobe_adapter: FFprobeAdapter,
        ffmpeg_adapter: FFmpegAdapter,
        timer_factory: Callable[..., threading.Timer] = threading.Timer,
    ):
        self.config = config
        self.event_bus = event_bus
        self.profiles = profiles
        self.path_resolver = path_resolver
        self.ffprobe_adapter = ffprobe_adapter
        self.ffmpeg_adapter = ffmpeg_adapter
        self.timer_factory = timer_factory
        self.logger = logging.getLogger(__name__)

        self.concurrency = config.general.concurrency
        self._executor = concurrent.futures.ThreadPoolExecutor(
            max_workers=self.concurrency, thread_name_prefix="encode"
        )

        # Counters (guarded by _state)
        self._state = threading.Condition()
        self._outstanding = 0  # submitted, not yet terminal
        self._waiting = 0      # delay elapsed, waiting for a slot
        self._active = 0
        self._timers: Set[threading.Timer] = set()
        self._closed = False

    @property
    def pending_count(self) -> int:
        """Jobs whose delay elapsed and that wait for a free slot."""
        with self._state:
            return self._waiting

    @property
    def delayed_count(self) -> int:
        with self._state:
            return len(self._timers)

    @property
    def active_count(self) -> int:
        with self._state:
            return self._active

    def submit(self, path: str, profile_name: Optional[str] = None) -> None:
        """Queue ``path`` for processing with the named profile. Fire-and-forget."""
        profile = self.profiles.resolve(profile_name)
        job_id = new_job_id()
        log = job_logger(job_id)
        job = MediaJob(
            job_id=job_id,
            requested_path=path,
            profile_name=profile_name,
            profile=profile,
            source_path=self.path_resolver.source_path(path, profile),
        )
        log.info(f"Request to process {job.source_path} with {profile_name or 'default'} profile")

        with self._state:
            if self._closed:
                log.error("Queue is shut down, dropping request")
                return
            self._outstanding += 1

        delay_s = profile.delay_minutes * 60
        admit_at = datetime.now() + timedelta(seconds=delay_s)
        try:
            self.event_bus.publish(JobQueued(job=job, admit_at=admit_at))
        except Exception:
            # Already counted as outstanding, so the job still proceeds
            log.exception("JobQueued subscriber failed")

        if delay_s <= 0:
            self._admit(job)
            return

        log.info(f"Delaying encoding until {admit_at.isoformat(timespec='seconds')}.")
        timer = self.timer_factory(delay_s, self._on_delay_elapsed)
        timer.args = (job, timer)
        timer.daemon = True
        with self._state:
            self._timers.add(timer)
        timer.start()

    def _on_delay_elapsed(self, job: MediaJob, timer: threading.Timer):
        with self._state:
            if timer not in self._timers:
                return  # dropped by shutdown
            self._timers.discard(timer)
        self._admit(job)

    def _admit(self, job: MediaJob):
        with self._state:
            self._waiting += 1
        try:
            self._executor.submit(self._run, job)
        except RuntimeError as e:
            # Executor already shut down
            with self._state:
                self._waiting -= 1
            job_logger(job.job_id).error(f"Not admitted: {e}")
            try:
                self._fail(job, f"Not admitted: {e}")
            finally:
                self._finish()

    def _run(self, job: MediaJob):
        with self._state:
            self._waiting -= 1
            self._active += 1
        try:
            self.process_job(job)
        except Exception:
            job_logger(job.job_id).exception(f"Unhandled error while finishing {job.source_path}")
        finally:
            with self._state:
                self._active -= 1
            self._finish()

    def _finish(self):
        with self._state:
            self._outstanding -= 1
            waiting = self._waiting
            self._state.notify_all()
        self.logger.debug(f"There are currently {waiting} encodes waiting.")

    def _fail(self, job: MediaJob, message: str):
        job.status = JobStatus.FAILED
        job.error_message = message
        self.event_bus.publish(JobFailed(job=job, error_message=message))

    def process_job(self, job: MediaJob) -> MediaJob:
        """Runs every stage of one job; never raises for job-level failures."""
        log = job_logger(job.job_id)
        start_time = time.monotonic()
        job.status = JobStatus.RUNNING

        try:
            self.event_bus.publish(JobStarted(job=job))
            self._analyze(job, log)
            self._configure(job, log)
            self._encode(job, log)
            self._move(job, log)
        except EncodarrError as e:
            log.error(f"This file did not process correctly: {e}")
            self._fail(job, str(e))
        except Exception as e:
            log.exception(f"Unexpected error while processing {job.source_path}")
            self._fail(job, f"Exception: {e}")
        else:
            job.status = JobStatus.COMPLETED
            self.event_bus.publish(JobCompleted(job=job))
        finally:
            job.duration_seconds = time.monotonic() - start_time
        return job

    def _analyze(self, job: MediaJob, log: JobLoggerAdapter):
        log.debug("Beginning probe of source file:")
        job.source_streams = self.ffprobe_adapter.probe(job.source_path)

    def _configure(self, job: MediaJob, log: JobLoggerAdapter):
        job.dest_path = self.path_resolver.destination_path(job.source_path, job.profile)
        job.temp_path = self.path_resolver.temp_path(job.profile)
        log.debug(f"Set temporary encode path to {job.temp_path}")
        log.debug(f"Set destination path to {job.dest_path}")
        job.destination_streams = StreamSelector(log).select(job.source_streams, job.profile)

    def _encode(self, job: MediaJob, log: JobLoggerAdapter):
        self.ffmpeg_adapter.run(job.source_path, job.destination_streams, job.temp_path, logger=log, job=job)

    def _move(self, job: MediaJob, log: JobLoggerAdapter):
        relocate(job.temp_path, job.dest_path, log)

    def wait(self, timeout: Optional[float] = None) -> bool:
        """Block until every submitted job is terminal. False on timeout."""
        with self._state:
            return self._state.wait_for(lambda: self._outstanding == 0, timeout)

    def shutdown(self, wait: bool = True):
        """Stop accepting jobs. With wait, first drain everything already submitted,
        including jobs still in their delay."""
        with self._state:
            self._closed = True
        if wait:
            self.wait()
        else:
            with self._state:
                timers = list(self._timers)
                self._timers.clear()
            for timer in timers:
                timer.cancel()
                self._finish()
            if timers:
                self.logger.warning(f"Dropped {len(timers)} delayed job(s) on shutdown")
        self._executor.shutdown(wait=wait)
