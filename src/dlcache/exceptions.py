"""
Custom exception hierarchy for the download cache.

All exceptions inherit from DLCacheError, which provides optional context
for structured error handling and logging.

A cache miss is not an error: lookups return None.
"""

from __future__ import annotations

from typing import Any


class DLCacheError(Exception):
    """Base exception for all download cache errors.

    Attributes:
        message: Human-readable error message.
        context: Optional structured context for logging/debugging.
    """

    def __init__(self, message: str, context: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.context = context or {}

    def __str__(self) -> str:
        if self.context:
            ctx_str = ", ".join(f"{k}={v!r}" for k, v in self.context.items())
            return f"{self.message} ({ctx_str})"
        return self.message

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.message!r}, context={self.context!r})"


class DiskIOError(DLCacheError):
    """Raised when creating or deleting files in the cache directory fails.

    Never propagated into a request path: the disk store logs and absorbs it.
    "File not found" during deletion is not a DiskIOError.

    Context should include:
        - path: The path being operated on
        - operation: "mkdir", "delete", ...
    """

    pass


class FetchError(DLCacheError):
    """Base class for failures on the fetch-to-cache path.

    These propagate to the request boundary and produce a non-2xx response.
    """

    #: Short machine-readable code returned to HTTP callers.
    code = "fetch_error"


class FetchFailure(FetchError):
    """Raised when the external fetch exits non-zero or cannot be started.

    Context should include:
        - identity: The request identity (URL)
        - returncode: Process exit status, if the process ran
    """

    code = "fetch_failed"


class OutputNotFound(FetchError):
    """Raised when the external fetch reported success but left no artifact.

    Context should include:
        - identity: The request identity (URL)
        - workspace: The workspace directory that was inspected
    """

    code = "output_not_found"


class CommitFailure(FetchError):
    """Raised when moving the fetched artifact into the cache directory fails.

    Context should include:
        - source: The temporary path
        - target: The final cache path
    """

    code = "commit_failed"
