from __future__ import annotations


class PostPilotError(Exception):
    code = "error"

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    def __str__(self) -> str:
        return self.message


class NotAuthenticatedError(PostPilotError):
    code = "not_authenticated"

    def __init__(self, message: str = "Unauthorized") -> None:
        super().__init__(message)


class ConfigurationError(PostPilotError):
    code = "configuration_error"


class UpstreamError(PostPilotError):
    """Non-success reply (or no reply) from the AI gateway or the Graph API.

    ``status`` is ``None`` when the endpoint could not be reached at all.
    """

    code = "upstream_error"

    def __init__(self, message: str, *, status: int | None = None, body: str = "") -> None:
        super().__init__(message)
        self.status = status
        self.body = body


class MalformedResponseError(PostPilotError):
    code = "malformed_response"


class InvalidShapeError(PostPilotError):
    code = "invalid_shape"


class OwnershipError(PostPilotError):
    code = "ownership_error"

    def __init__(self, message: str = "Unauthorized") -> None:
        super().__init__(message)


class ValidationError(PostPilotError):
    code = "validation_error"


class NotFoundError(PostPilotError):
    code = "not_found"
