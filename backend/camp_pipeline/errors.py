"""Pipeline error taxonomy.

Conflict and illegal-transition errors are raised to callers (the API maps them
to HTTP 409). Extraction errors are raised by extractors and recorded on the job
rather than propagated; their class decides how the source's health reacts.
Record-level validation problems are never exceptions, they are reported in
``Validation.errors``.
"""


class PipelineError(RuntimeError):
    """Base error for the ingestion pipeline."""


class NotFoundError(PipelineError):
    """Raised when a referenced source, job or discovery item does not exist."""


class ConflictError(PipelineError):
    """Raised when a job is triggered for a source that already has one in progress."""

    def __init__(self, source_id, running_job_id=None):
        self.source_id = source_id
        self.running_job_id = running_job_id
        super().__init__(f"A job is already in progress for source {source_id}")


class IllegalTransitionError(PipelineError):
    """Raised when a state machine is asked for a transition its table does not allow."""

    def __init__(self, entity: str, current: str, target: str):
        self.entity = entity
        self.current = current
        self.target = target
        super().__init__(f"Cannot move {entity} from '{current}' to '{target}'")


class ExtractionError(PipelineError):
    """Raised by an extractor when a source could not be extracted."""

    kind = "transient"


class TransientExtractionError(ExtractionError):
    """Network, rate limit or other fault that a later retry may fix."""

    kind = "transient"


class StructuralExtractionError(ExtractionError):
    """The source's page structure no longer matches what the extractor expects."""

    kind = "structural"
