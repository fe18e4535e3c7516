from .errors import (
    ConfigurationError,
    InvalidShapeError,
    MalformedResponseError,
    NotAuthenticatedError,
    NotFoundError,
    OwnershipError,
    PostPilotError,
    UpstreamError,
    ValidationError,
)

__all__ = [
    "PostPilotError",
    "NotAuthenticatedError",
    "ConfigurationError",
    "UpstreamError",
    "MalformedResponseError",
    "InvalidShapeError",
    "OwnershipError",
    "ValidationError",
    "NotFoundError",
]
