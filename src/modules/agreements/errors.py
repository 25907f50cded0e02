class AgreementError(Exception):
    """Base class for loan agreement failures surfaced to the HTTP layer."""
    status_code = 500
    code = "agreement_error"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(AgreementError):
    status_code = 400
    code = "validation_error"


class NotFoundError(AgreementError):
    status_code = 404
    code = "not_found"


class AlreadySignedError(AgreementError):
    status_code = 409
    code = "already_signed"


class MissingSignatureError(AgreementError):
    status_code = 400
    code = "missing_signature"


class UnsupportedImageFormat(AgreementError):
    status_code = 415
    code = "unsupported_image_format"


class StorageError(AgreementError):
    status_code = 500
    code = "storage_error"


class ConcurrentUpdateError(AgreementError):
    status_code = 409
    code = "concurrent_update"
