"""
Worker Exceptions

Structured error types for the image pipeline. Every error carries a code,
the pipeline stage it was raised in, and a details dict so failures can be
logged with enough context to reproduce them.
"""

from typing import Optional, Dict, Any, Iterable, Tuple

from imageworker.core.logging import job_id_var, stage_var


class ImageWorkerError(Exception):
    """Base exception for the image worker."""

    def __init__(
        self,
        message: str,
        code: int = 500,
        job_id: Optional[str] = None,
        stage: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None
    ):
        self.message = message
        self.code = code
        self.job_id = job_id or job_id_var.get()
        self.stage = stage or stage_var.get()
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "error": self.message,
            "error_type": type(self).__name__,
            "code": self.code,
            "job_id": self.job_id,
            "stage": self.stage,
            "details": self.details,
        }


# =============================================================================
# Configuration / dispatch errors (abort the affected operation)
# =============================================================================

class UnknownOperation(ImageWorkerError):
    """Raised when an operation name is not in the transform catalog."""

    def __init__(self, name: str, available: Iterable[str] = (), **kwargs):
        super().__init__(f"Unknown operation '{name}'", code=400, **kwargs)
        self.details["op"] = name
        self.details["available"] = sorted(available)


class MissingParameter(ImageWorkerError):
    """Raised when a transform's required parameter is absent."""

    def __init__(self, op: str, missing: Iterable[str], **kwargs):
        missing = list(missing)
        super().__init__(
            f"Operation '{op}' is missing required parameter(s): {', '.join(missing)}",
            code=400,
            **kwargs
        )
        self.details["op"] = op
        self.details["missing"] = missing


class InvalidParameter(ImageWorkerError):
    """Raised when a parameter is present but unusable (e.g. width=0)."""

    def __init__(self, op: str, name: str, value: Any, reason: str, **kwargs):
        super().__init__(
            f"Operation '{op}' got invalid {name}={value!r}: {reason}",
            code=400,
            **kwargs
        )
        self.details["op"] = op
        self.details["parameter"] = name
        self.details["value"] = value


class InvalidGridDimensions(ImageWorkerError):
    """Raised when a tile grid cannot partition the source image."""

    def __init__(self, grid_width: Any, grid_height: Any, reason: str = "grid dimensions must be positive", **kwargs):
        super().__init__(
            f"Invalid tile grid {grid_width}x{grid_height}: {reason}",
            code=400,
            **kwargs
        )
        self.details["grid_width"] = grid_width
        self.details["grid_height"] = grid_height


class IncompleteGrid(ImageWorkerError):
    """Raised when a merge is attempted on a partially populated grid."""

    def __init__(self, missing: Iterable[Tuple[int, int]], **kwargs):
        missing = list(missing)
        cells = ", ".join(f"({col}, {row})" for col, row in missing)
        super().__init__(f"Tile grid is incomplete, missing cells: {cells}", code=400, **kwargs)
        self.details["missing"] = missing


# =============================================================================
# I/O errors
# =============================================================================

class SourceUnavailable(ImageWorkerError):
    """Raised when the source image cannot be downloaded or opened. Fatal to the run."""

    def __init__(self, message: str, source: Optional[str] = None, **kwargs):
        super().__init__(message, code=502, **kwargs)
        self.details["source"] = source


class StorageError(ImageWorkerError):
    """Raised when storage operations fail."""

    def __init__(self, message: str, **kwargs):
        super().__init__(message, code=500, **kwargs)


class PublishFailure(ImageWorkerError):
    """Raised when a single file could not be published. Reported, never fatal."""

    def __init__(self, message: str, target: str, **kwargs):
        super().__init__(message, code=502, **kwargs)
        self.details["target"] = target
