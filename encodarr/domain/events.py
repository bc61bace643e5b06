"""Domain events for the encode pipeline.

Events represent job state changes that flow through the EventBus, decoupling
the processing queue from whatever reports on it (the CLI summary, tests).

See `infrastructure/event_bus.py` for the pub/sub mechanism.
"""

from datetime import datetime
from pydantic import BaseModel
from .models import MediaJob


class Event(BaseModel):
    """Base class for all domain events.

    Events are validated Pydantic models. They are not frozen by default.
    """

    pass


class JobEvent(Event):
    """Base class for events related to a specific job."""

    job: MediaJob


class JobQueued(JobEvent):
    """Emitted on submission; admission waits for the profile delay to elapse."""

    admit_at: datetime


class JobStarted(JobEvent):
    """Emitted when a job is admitted to a concurrency slot."""

    pass


class JobProgressUpdated(JobEvent):
    """Emitted at most once per progress interval while the encoder runs."""

    line: str


class JobCompleted(JobEvent):
    """Emitted when the output file reached its destination."""

    pass


class JobFailed(JobEvent):
    """Emitted when any stage of the job failed."""

    error_message: str
