import subprocess
import logging
import shlex
import time
from collections import deque
from pathlib import Path
from typing import Callable, List, Optional, Sequence, Union
from encodarr.config.models import OutputSettings
from encodarr.domain.errors import EncodeFailed
from encodarr.domain.events import JobProgressUpdated
from encodarr.domain.models import MediaJob, Stream
from encodarr.infrastructure.event_bus import EventBus

Log = Union[logging.Logger, logging.LoggerAdapter]

# HDR (PQ/HLG, bt2020) to SDR bt709
TONEMAP_FILTER = (
    "zscale=t=linear:npl=100,format=gbrpf32le,zscale=p=bt709,"
    "tonemap=tonemap=hable:desat=0,zscale=t=bt709:m=bt709:r=tv,format=yuv420p"
)

_TAIL_LINES = 20


class ProgressThrottle:
    """Lets one progress line through per interval; the rest are dropped."""

    def __init__(self, interval_s: float, clock: Callable[[], float] = time.monotonic):
        self.interval_s = interval_s
        self.clock = clock
        self._last_emit: Optional[float] = None

    def offer(self, line: str) -> Optional[str]:
        now = self.clock()
        if self._last_emit is None or now - self._last_emit >= self.interval_s:
            self._last_emit = now
            return line
        return None


def stream_arguments(stream: Stream, out_index: int) -> List[str]:
    """Mapping, codec and (for re-encoded streams) filter and rate-control arguments."""
    settings = stream.output or OutputSettings()
    args = ["-map", f"0:{stream.index}", f"-c:{out_index}", settings.codec]
    if settings.is_copy:
        return args

    filters = []
    if settings.size:
        filters.append(f"scale={settings.size}")
    if settings.tonemap:
        filters.append(TONEMAP_FILTER)
    if filters:
        # Per-output-stream -filter keeps -map valid; a -filter_complex graph would replace the map
        args.extend([f"-filter:{out_index}", ",".join(filters)])

    if settings.crf:
        args.extend([f"-crf:{out_index}", settings.crf])
    if settings.bitrate:
        args.extend([f"-b:{out_index}", settings.bitrate])
    if settings.preset:
        args.extend([f"-preset:{out_index}", settings.preset])
    if settings.tune:
        args.extend([f"-tune:{out_index}", settings.tune])
    return args


class FFmpegAdapter:
    """Builds the ffmpeg invocation for a destination stream list and runs it."""

    def __init__(
        self,
        event_bus: Optional[EventBus] = None,
        ffmpeg_path: str = "ffmpeg",
        progress_interval_s: float = 60.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.event_bus = event_bus
        self.ffmpeg_path = ffmpeg_path
        self.progress_interval_s = progress_interval_s
        self.clock = clock
        self.logger = logging.getLogger(__name__)

    def build_command(self, source_path: Path, streams: Sequence[Stream], output_path: Path) -> List[str]:
        """Constructs the ffmpeg command line arguments."""
        cmd = [
            self.ffmpeg_path,
            "-hide_banner",
            "-nostdin",
            "-y",  # Overwrite output files
            "-i", str(source_path),
        ]
        out_index = 0
        for stream in streams:
            if stream.output is not None and stream.output.skip:
                continue
            # Output indices count emitted streams, not source indices
            cmd.extend(stream_arguments(stream, out_index))
            out_index += 1
        cmd.append(str(output_path))
        return cmd

    def run(
        self,
        source_path: Path,
        streams: Sequence[Stream],
        output_path: Path,
        logger: Optional[Log] = None,
        job: Optional[MediaJob] = None,
    ) -> Path:
        """Runs one encode and blocks until ffmpeg exits.

        There is no timeout: a hung ffmpeg keeps the caller waiting.

        Returns:
            output_path on success.

        Raises:
            EncodeFailed: ffmpeg could not be started, exited non-zero, or its
                output could not be handled (ffmpeg is then stopped). The partial
                output file is removed.
        """
        log = logger or self.logger
        output_path = Path(output_path)
        output_path.parent.mkdir(parents=True, exist_ok=True)
        cmd = self.build_command(source_path, streams, output_path)

        try:
            process = subprocess.Popen(
                cmd,
                stdout=subprocess.PIPE,
                stderr=subprocess.STDOUT,
                universal_newlines=True,
                # Tags echoed by ffmpeg are not guaranteed to be valid UTF-8
                encoding="utf-8",
                errors="replace",
                bufsize=1
            )
        except OSError as e:
            raise EncodeFailed(f"Unable to start {self.ffmpeg_path}: {e}") from e

        log.info("Starting encode")
        log.debug(shlex.join(cmd))

        throttle = ProgressThrottle(self.progress_interval_s, clock=self.clock)
        tail: "deque[str]" = deque(maxlen=_TAIL_LINES)
        try:
            # universal_newlines splits ffmpeg's \r-terminated progress updates into lines
            for raw_line in process.stdout or []:
                line = raw_line.strip()
                if not line:
                    continue
                tail.append(line)
                if line.startswith("frame=") or line.startswith("size="):
                    reported = throttle.offer(line)
                    if reported is not None:
                        log.debug(reported)
                        if self.event_bus is not None and job is not None:
                            self.event_bus.publish(JobProgressUpdated(job=job, line=reported))

            process.wait()
        except Exception as e:
            log.error(f"Encoder output handling failed, stopping ffmpeg: {e}")
            self._stop(process)
            self._remove_partial(output_path, log)
            raise EncodeFailed(
                f"ffmpeg aborted: {e}",
                returncode=process.returncode,
                output_tail=tail,
            ) from e

        if process.returncode != 0:
            self._remove_partial(output_path, log)
            reason = tail[-1] if tail else "no output"
            raise EncodeFailed(
                f"ffmpeg exited with code {process.returncode}: {reason}",
                returncode=process.returncode,
                output_tail=tail,
            )

        log.info("Encoding completed successfully")
        return output_path

    @staticmethod
    def _stop(process: subprocess.Popen):
        process.terminate()
        try:
            process.wait(timeout=3)
        except subprocess.TimeoutExpired:
            process.kill()
            process.wait()

    @staticmethod
    def _remove_partial(output_path: Path, log: Log):
        if output_path.exists():
            try:
                output_path.unlink()
            except OSError as e:
                log.warning(f"Failed to remove partial output {output_path}: {e}")
