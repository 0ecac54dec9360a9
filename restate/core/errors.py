"""Domain-specific errors for restate."""


class RestateError(Exception):
    """Base error for restate."""


class ConfigError(RestateError):
    """Raised when the device configuration cannot produce any routes."""


class FamilyValidationError(ConfigError):
    """Raised when a family table does not conform to schema or semantics."""


class FamilyLoadError(ConfigError):
    """Raised when reading family or device configuration sources fails."""


class ClientError(RestateError):
    """Base for request errors caused by the caller. Never retried."""


class UnknownCodeError(ClientError):
    """Raised when a code is not supported by the targeted device."""


class InvalidValueError(ClientError):
    """Raised when a value fails to parse or lies outside endpoint bounds."""


class TargetSelectionError(ClientError):
    """Raised when the requested device list is empty or names an unknown device."""


class TransportError(RestateError):
    """Base transport error."""


class TransportTimeoutError(TransportError):
    """Raised when a vendor call exceeds its deadline."""


class TransportUnreachableError(TransportError):
    """Raised when the vendor hub cannot be connected to."""


class VendorRejectedError(TransportError):
    """Raised when the hub answers with a non-200 status or an embedded error code."""

    def __init__(self, detail: str) -> None:
        super().__init__(detail)
        self.detail = detail


class MalformedResponseError(TransportError):
    """Raised when a vendor response cannot be decoded into the expected shape."""


class InternalError(RestateError):
    """Base for request-level failures that are not the caller's fault."""


class AllTargetsFailedError(InternalError):
    """Raised when no targeted device completed the operation."""
