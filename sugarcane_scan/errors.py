"""
Error taxonomy shared by the validation engine and the scan record service
"""


class ScanError(Exception):
    """Base class for all sugarcane scan errors"""

    status_code = 500
    public_message = "Internal server error"

    def __init__(self, message: str = None):
        super().__init__(message or self.public_message)
        self.message = message or self.public_message


class InputError(ScanError):
    """Missing or malformed image or request fields"""

    status_code = 400
    public_message = "Invalid request"


class ValidationError(InputError):
    """Request fields violate the scan update schema"""


class NotFoundError(ScanError):
    """Missing scan record or image blob"""

    status_code = 404
    public_message = "Not found"


class StorageError(ScanError):
    """Blob or row read/write failure.

    The message is logged but never returned to HTTP clients.
    """

    status_code = 500
    public_message = "Storage operation failed"


class ModelLoadError(ScanError):
    """The primary leaf model could not be loaded or warmed up.

    Recoverable: the engine falls back to heuristic validation.
    """
