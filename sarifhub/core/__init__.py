"""Core utilities: exceptions, cancellation, logging, and file access."""

from .cancellation import CancellationToken, run_cancellable
from .exceptions import (
    AuthenticationError,
    CertificateAuthenticationError,
    ClientError,
    ConfigurationError,
    HubRequestError,
    HubTimeoutError,
    IncompatibleClientError,
    InvalidAddressError,
    InvalidConfigError,
    InvalidRecordIdError,
    MissingCredentialError,
    OperationCancelledError,
    OriginMismatchError,
    ProtocolVersionError,
    RequestError,
    ResponseFormatError,
    SarifHubError,
    TransportError,
    UnsupportedHubFeatureError,
    ValidationError,
)
from .logging_config import configure_hub_logging, get_hub_logger

__all__ = [
    # Cancellation
    "CancellationToken",
    "run_cancellable",
    # Logging
    "configure_hub_logging",
    "get_hub_logger",
    # Exceptions
    "SarifHubError",
    "ConfigurationError",
    "MissingCredentialError",
    "InvalidConfigError",
    "ClientError",
    "TransportError",
    "HubTimeoutError",
    "RequestError",
    "HubRequestError",
    "ResponseFormatError",
    "OriginMismatchError",
    "AuthenticationError",
    "CertificateAuthenticationError",
    "ProtocolVersionError",
    "IncompatibleClientError",
    "UnsupportedHubFeatureError",
    "OperationCancelledError",
    "ValidationError",
    "InvalidAddressError",
    "InvalidRecordIdError",
]
