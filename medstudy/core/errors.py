"""Domain errors raised by the ingestion pipeline and the API layer.

Every error carries a stable ``code`` and the HTTP status it maps to, so the
app-level exception handler can render the usual ``{code, message, details}``
error envelope without knowing about individual failure modes.
"""

from __future__ import annotations

from typing import Any, Dict, Optional


class MedStudyError(Exception):
    code = "MEDSTUDY_ERROR"
    status_code = 500

    def __init__(self, message: str, *, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_error(self) -> Dict[str, Any]:
        err: Dict[str, Any] = {"code": self.code, "message": self.message}
        if self.details:
            err["details"] = self.details
        return err


class UploadRejected(MedStudyError):
    code = "UPLOAD_REJECTED"
    status_code = 415


class UploadTooLarge(UploadRejected):
    code = "UPLOAD_TOO_LARGE"
    status_code = 413


class ArchiveCorrupt(MedStudyError):
    code = "ARCHIVE_CORRUPT"
    status_code = 422


class UnsupportedFileType(MedStudyError):
    code = "UNSUPPORTED_FILE_TYPE"
    status_code = 415


class TextExtractionError(MedStudyError):
    code = "TEXT_EXTRACTION_FAILED"
    status_code = 422


class AIServiceFailure(MedStudyError):
    code = "AI_UNAVAILABLE"
    status_code = 502


class InvalidStatusTransition(MedStudyError):
    code = "INVALID_STATUS_TRANSITION"
    status_code = 409


class NotFound(MedStudyError):
    code = "NOT_FOUND"
    status_code = 404


class InvalidRequest(MedStudyError):
    code = "INVALID_REQUEST"
    status_code = 400
