"""
Exception hierarchy for the workloads engine.

NotFound is not an exception in most of the engine: a missing
package, version or in-package file is a normal outcome and is reported as
``None`` or an empty list. The classes here cover the remaining cases, where a
caller must be able to tell "doesn't exist" from "couldn't check".
"""
from __future__ import annotations


class WorkloadsError(Exception):
    """Base class for all engine errors."""

    code: str = "UNKNOWN"

    def __init__(self, message: str) -> None:
        super().__init__(message)


class MalformedDocumentError(WorkloadsError):
    """A JSON document could not be parsed or does not have the expected shape."""

    code = "MALFORMED_DOCUMENT"

    def __init__(self, message: str, source: str | None = None) -> None:
        super().__init__(message)
        self.source = source


class FeedError(WorkloadsError):
    """The package feed could not be reached or answered with an unexpected error."""

    code = "FEED_ERROR"

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class PackageNotFoundError(WorkloadsError):
    """A package version that had to exist (for a full download) does not."""

    code = "PACKAGE_NOT_FOUND"


class OperationCancelledError(WorkloadsError):
    """The caller signalled cancellation before the next I/O boundary."""

    code = "CANCELLED"


class WorkloadNotFoundError(WorkloadsError):
    """A workload id referenced through ``extends`` is not defined in the manifest."""

    code = "WORKLOAD_NOT_FOUND"


class WorkloadCycleError(WorkloadsError):
    """Workload ``extends`` references form a cycle."""

    code = "WORKLOAD_CYCLE"

    def __init__(self, message: str, path: list[str] | None = None) -> None:
        super().__init__(message)
        self.path = path or []


def raise_if_cancelled(cancel_event) -> None:
    """Raise OperationCancelledError when the caller's event is set."""
    if cancel_event is not None and cancel_event.is_set():
        raise OperationCancelledError("Operation was cancelled")
