"""Domain-specific errors for streetlightctl."""


class StreetlightError(Exception):
    """Base error for streetlightctl."""


class ValidationError(StreetlightError):
    """Raised when a command parameter is out of range. Nothing is sent."""


class ProfileLoadError(StreetlightError):
    """Raised when reading device profile sources fails."""


class ProfileValidationError(StreetlightError):
    """Raised when a profile file does not conform to schema or semantics."""


class ProtocolError(StreetlightError):
    """Base error for a failed exchange with the device."""


class TransportError(ProtocolError):
    """Base transport error."""


class TransportConnectError(TransportError):
    """Raised on RFCOMM/serial connect failures."""


class TransportSendError(TransportError):
    """Raised when writing a command fails."""


class TransportReceiveError(TransportError):
    """Raised when reading a response fails or comes back short."""


class TransportTimeoutError(TransportError, TimeoutError):
    """Raised when the expected response bytes never arrive."""


class ExchangeCancelledError(TransportError):
    """Raised when a caller cancels an exchange while it waits for a response."""


class ProtocolFailure(ProtocolError):
    """Raised when the device answers with a non-'A' acknowledgement."""


class MalformedResponseError(ProtocolError):
    """Raised when a parameters response does not have the expected size."""
