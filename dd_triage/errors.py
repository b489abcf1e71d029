"""Exception types raised by the triage query layer."""


class TriageError(Exception):
    """Base class for all dd_triage errors."""


class ValidationError(TriageError, ValueError):
    """A required parameter is missing or malformed.

    Raised before any backend call is issued.
    """


class BackendError(TriageError):
    """The query backend failed to answer a request.

    Backends raise this (or any other exception) from ``list_entries`` and
    ``aggregate``. One-shot queries let it propagate; the live tail engine
    routes it to the error callback instead.
    """

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class TailStateError(TriageError, RuntimeError):
    """Invalid live tail state transition (e.g. restarting a stopped session)."""
