import subprocess
import json
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional
from encodarr.domain.errors import SourceUnavailable
from encodarr.domain.models import Stream, StreamKind

_KINDS = {kind.value for kind in StreamKind}


class FFprobeAdapter:
    """Wrapper around ffprobe to extract stream information."""

    def __init__(self, ffprobe_path: str = "ffprobe"):
        self.ffprobe_path = ffprobe_path
        self.logger = logging.getLogger(__name__)

    @staticmethod
    def _to_int(value: Any) -> Optional[int]:
        if value is None or value == "N/A":
            return None
        try:
            return int(float(value))
        except (TypeError, ValueError):
            return None

    @staticmethod
    def _parse_framerate(value: Any) -> Optional[float]:
        if not value:
            return None
        text = str(value)
        try:
            if "/" in text:
                num, den = text.split("/", 1)
                if float(den) == 0:
                    return None
                return round(float(num) / float(den), 3)
            return float(text)
        except ValueError:
            return None

    def _parse_stream(self, raw: Dict[str, Any]) -> Optional[Stream]:
        kind = raw.get("codec_type")
        if kind not in _KINDS:
            self.logger.debug(f"\tIgnoring {kind} stream (idx:{raw.get('index')})")
            return None

        tags = raw.get("tags") or {}
        bitrate = self._to_int(raw.get("bit_rate"))
        if not bitrate:
            bitrate = self._to_int(tags.get("BPS-eng") or tags.get("BPS"))

        fields: Dict[str, Any] = {
            "index": raw.get("index"),
            "kind": kind,
            "codec": raw.get("codec_name", "unknown"),
            "language": tags.get("language"),
            "title": tags.get("title"),
            "bitrate": bitrate,
        }
        if kind == "video":
            fields.update(
                width=self._to_int(raw.get("width")),
                height=self._to_int(raw.get("height")),
                framerate=self._parse_framerate(raw.get("r_frame_rate")),
                is_hdr=raw.get("color_space") == "bt2020nc",
            )
        elif kind == "audio":
            fields.update(
                channels=self._to_int(raw.get("channels")),
                sample_rate=self._to_int(raw.get("sample_rate")),
            )
        return Stream(**fields)

    def probe(self, file_path: Path) -> List[Stream]:
        """Executes ffprobe and parses the streams it reports, in container order.

        Raises:
            SourceUnavailable: the file is missing or ffprobe cannot read it.
        """
        if not Path(file_path).exists():
            raise SourceUnavailable(file_path)

        cmd = [
            self.ffprobe_path,
            "-v", "quiet",
            "-print_format", "json",
            "-show_streams",
            str(file_path)
        ]
        self.logger.debug(f"Beginning probe of {file_path}")

        try:
            result = subprocess.run(cmd, capture_output=True, text=True)
        except OSError as e:
            raise SourceUnavailable(file_path, f"cannot run {self.ffprobe_path}: {e}") from e
        if result.returncode != 0:
            raise SourceUnavailable(file_path, f"ffprobe failed: {result.stderr.strip()}")

        try:
            data = json.loads(result.stdout)
        except json.JSONDecodeError as e:
            raise SourceUnavailable(file_path, f"unreadable ffprobe output: {e}") from e

        streams = []
        for raw in data.get("streams", []):
            stream = self._parse_stream(raw)
            if stream is not None:
                streams.append(stream)
                self.logger.debug(f"\t{stream.model_dump_json(exclude_none=True)}")
        return streams
