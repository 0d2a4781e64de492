"""Error taxonomy for workflow resolution and dispatch.

Every error carries a short ``kind`` string so callers can map it to an exit
code or a user-facing message without isinstance chains.
"""


class WfctlError(Exception):
    """Base class for all wfctl errors."""

    kind = "error"


class ResolutionError(WfctlError):
    """A query could not be resolved to exactly one workflow."""

    def __init__(
        self,
        message: str,
        query: str = "",
        candidates: list[str] | None = None,
        available: list[str] | None = None,
    ):
        super().__init__(message)
        self.query = query
        # near-miss names ("did you mean")
        self.candidates = candidates or []
        self.available = available or []


class WorkflowNotFound(ResolutionError):
    kind = "not-found"


class AmbiguousWorkflow(ResolutionError):
    kind = "ambiguous"


class DispatchRejected(WfctlError):
    """The trigger call returned a client or server error."""

    kind = "dispatch-rejected"

    def __init__(self, message: str, status: int = 0):
        super().__init__(message)
        self.status = status


class UnsupportedTrigger(WfctlError):
    """The workflow has no workflow_dispatch trigger."""

    kind = "unsupported-trigger"


class RunIdUnavailable(WfctlError):
    """Dispatch was accepted but the new run did not show up in time."""

    kind = "run-id-unavailable"
