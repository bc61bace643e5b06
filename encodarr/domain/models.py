from enum import Enum
from pathlib import Path
from typing import List, Optional
from pydantic import BaseModel, ConfigDict, Field
from encodarr.config.models import EncodingProfile, OutputSettings


class StreamKind(str, Enum):
    VIDEO = "video"
    AUDIO = "audio"
    SUBTITLE = "subtitle"


class JobStatus(str, Enum):
    QUEUED = "QUEUED"
    RUNNING = "RUNNING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"


class Stream(BaseModel):
    """A probed track. Selection works on copies, never on the probed instance."""

    model_config = ConfigDict(frozen=True)

    index: int
    kind: StreamKind
    codec: str
    language: Optional[str] = None
    title: Optional[str] = None
    bitrate: Optional[int] = None
    # video
    width: Optional[int] = None
    height: Optional[int] = None
    framerate: Optional[float] = None
    is_hdr: Optional[bool] = None
    # audio
    channels: Optional[int] = None
    sample_rate: Optional[int] = None
    # assigned during selection
    is_primary: Optional[bool] = None
    output: Optional[OutputSettings] = None

    def summary(self) -> dict:
        data = {"index": self.index, "kind": self.kind.value, "codec": self.codec}
        if self.is_primary is not None:
            data["primary"] = self.is_primary
        return data


class MediaJob(BaseModel):
    """One submitted file's probe → select → encode → relocate lifecycle."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    job_id: str
    requested_path: str
    profile_name: Optional[str] = None
    profile: EncodingProfile
    source_path: Path
    source_streams: List[Stream] = Field(default_factory=list)
    destination_streams: List[Stream] = Field(default_factory=list)
    temp_path: Optional[Path] = None
    dest_path: Optional[Path] = None
    status: JobStatus = JobStatus.QUEUED
    error_message: Optional[str] = None
    duration_seconds: Optional[float] = None
