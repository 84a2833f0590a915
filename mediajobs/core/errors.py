"""Error taxonomy shared by the store, the scheduler and the lifecycle service."""


class MediaJobsError(Exception):
    """Base class for every error raised by the job lifecycle engine."""

    def __init__(self, message: str, job_id: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.job_id = job_id


class InvalidInput(MediaJobsError):
    """Submission or reprocess parameters failed validation."""


class NotFound(MediaJobsError):
    """No job exists with the requested id."""


class Unauthorized(MediaJobsError):
    """Caller is neither the job owner nor an admin."""


class AlreadyProcessing(MediaJobsError):
    """A transition is already in flight for the job."""


class DuplicateId(MediaJobsError):
    """A job with the same id is already stored."""


class PersistenceError(MediaJobsError):
    """The persistence adapter failed to load or save the collection.

    Raised after the in-memory change has been applied; ``record`` carries the
    state the caller would otherwise have received.
    """

    def __init__(self, message: str, job_id: str | None = None, record=None) -> None:
        super().__init__(message, job_id=job_id)
        self.record = record
