from typing import Dict, Optional


MAX_DETAIL_CHARS = 2000


def truncate(text: Optional[str], limit: int = MAX_DETAIL_CHARS) -> str:
    if not text:
        return ""
    return text[:limit]


class ReceiptUploadError(Exception):
    """Base class for every failure the upload workflow reports to a caller"""

    http_status = 500

    def __init__(self, message: str, details: Optional[str] = None,
                 status: Optional[int] = None, step: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.details = truncate(details)
        self.status = status
        self.step = step

    def to_dict(self) -> Dict:
        body = {"error": self.message}
        if self.details:
            body["details"] = self.details
        if self.step:
            body["step"] = self.step
        if self.status is not None:
            body["status"] = self.status
        return body


class ValidationError(ReceiptUploadError):
    """Required input missing before any network call was made"""

    http_status = 400


class OcrNoDataError(ReceiptUploadError):
    """The OCR service returned no expense document"""

    http_status = 422


class AuthError(ReceiptUploadError):
    """Token refresh failed"""


class UpstreamError(ReceiptUploadError):
    """An external call returned a non-success status or never completed"""


class MissingReferenceError(ReceiptUploadError):
    """The call succeeded but the expected URL/ID is not in the response"""


class AttachmentError(ReceiptUploadError):
    """Every attachment strategy was tried and none succeeded"""


class ConfigError(ReceiptUploadError):
    """uploader.yml names something the uploader does not know"""
