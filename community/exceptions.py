"""
Composer and media exceptions.

Messages are user-facing (Norwegian) because the composer copies them
straight into ``state.error`` or ``MediaItem.upload_error``.
"""


class ComposerError(Exception):
    """Base exception for the post composer."""

    def __init__(self, message: str = "Noe gikk galt"):
        self.message = message
        super().__init__(self.message)


class MediaValidationError(ComposerError):
    """Raised when a file is rejected before upload."""

    def __init__(self, message: str, code: str = "invalid"):
        self.code = code
        super().__init__(message)


class MediaUploadError(ComposerError):
    """Raised when storing an image or video fails."""

    def __init__(self, message: str = "Opplasting feilet", media_id: str = None):
        self.media_id = media_id
        super().__init__(message)


class VideoServiceError(ComposerError):
    """Raised when the video hosting API returns an error."""

    def __init__(self, message: str, status_code: int = None):
        self.status_code = status_code
        super().__init__(message)
