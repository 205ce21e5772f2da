class ChatError(Exception):
    status_code = 500

    def __init__(self, message: str = "Internal Error"):
        super().__init__(message)
        self.message = message


class UnauthenticatedError(ChatError):
    status_code = 401


class ForbiddenError(ChatError):
    status_code = 403


class NotFoundError(ChatError):
    status_code = 404


class ValidationError(ChatError):
    status_code = 400


class UpstreamError(ChatError):
    status_code = 502


class PersistenceError(ChatError):
    status_code = 500
