"""
Custom exception hierarchy for imgassembly.

All imgassembly exceptions inherit from ImageAssemblyError so callers can
catch the entire family with a single except clause.
"""

from __future__ import annotations


class ImageAssemblyError(Exception):
    """Base exception for all imgassembly errors.

    ``partial_result`` is set by the orchestrator when another pipeline of
    the same request finished; it holds the artifacts that were produced.
    """

    partial_result = None


class InputError(ImageAssemblyError):
    """Raised when the image sequence is empty, too long, or undecodable."""

    def __init__(self, message: str, index: int | None = None) -> None:
        super().__init__(message)
        self.index = index


class BackendUnavailable(ImageAssemblyError):
    """Raised when an encoder backend's external tool is not installed."""


class BackendExecutionFailure(ImageAssemblyError):
    """Raised when an encoder backend exits non-zero or emits bad output."""

    def __init__(self, message: str, stderr: str = "") -> None:
        super().__init__(message)
        self.stderr = stderr


class EncodingFailed(ImageAssemblyError):
    """Raised once every backend in the encoder chain has failed."""

    def __init__(self, failures: list[tuple[str, Exception]]) -> None:
        self.failures = failures
        if failures:
            detail = "; ".join(f"{name}: {exc}" for name, exc in failures)
        else:
            detail = "no backends configured"
        super().__init__(f"All animation backends failed ({detail})")


class WorkspaceCleanupFailure(ImageAssemblyError):
    """Describes a workspace that could not be removed.  Logged, never raised."""


class AssemblyFailure(ImageAssemblyError):
    """Raised when a document page cannot be built."""

    def __init__(self, message: str, page_index: int | None = None) -> None:
        super().__init__(message)
        self.page_index = page_index


class PublishError(ImageAssemblyError):
    """Raised when a finished artifact cannot be stored."""
