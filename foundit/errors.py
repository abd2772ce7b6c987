class FoundItError(Exception):
    def __init__(self, message: str, status_code: int = 400):
        """
        Base class for errors raised by the view-model layer.

        Args:
            message (str): User-readable message.
            status_code (int): HTTP status the presentation layer should use.
        """
        super().__init__(message)

        self.message = message
        self.status_code = status_code
        self.status = "fail" if str(status_code).startswith("4") else "error"


class PostValidationError(FoundItError):
    def __init__(self, message: str, field: str | None = None):
        super().__init__(message, 400)
        self.field = field


class NotAuthenticatedError(FoundItError):
    def __init__(self, message: str = "You must be signed in"):
        super().__init__(message, 401)


class PermissionDeniedError(FoundItError):
    def __init__(self, message: str = "Not allowed"):
        super().__init__(message, 403)


class NotFoundError(FoundItError):
    def __init__(self, message: str = "Not found"):
        super().__init__(message, 404)


class DuplicateSubmissionError(FoundItError):
    def __init__(self, key: str):
        super().__init__("This item is already being updated", 409)
        self.key = key


class AuthError(FoundItError):
    def __init__(self, code: str, message: str):
        super().__init__(message, 400)
        self.code = code


class UploadError(FoundItError):
    def __init__(self, message: str):
        super().__init__(message, 400)


class StoreError(FoundItError):
    def __init__(self, message: str):
        super().__init__(message, 502)


class SubmissionError(FoundItError):
    def __init__(self, message: str):
        super().__init__(message, 502)
