"""Exception hierarchy for sarifhub.

Every failure raised by this package derives from `SarifHubError`.
Errors are constructed where the failure is detected, so callers can
branch on the exception type instead of inspecting ad hoc attributes.
"""

# Locale-neutral transport error codes.
ECONNREFUSED = "ECONNREFUSED"
ECONNRESET = "ECONNRESET"
EPROTO = "EPROTO"
ETIMEDOUT = "ETIMEDOUT"
ENOTFOUND = "ENOTFOUND"
DEPTH_ZERO_SELF_SIGNED_CERT = "DEPTH_ZERO_SELF_SIGNED_CERT"
SELF_SIGNED_CERT_IN_CHAIN = "SELF_SIGNED_CERT_IN_CHAIN"
UNABLE_TO_GET_ISSUER_CERT_LOCALLY = "UNABLE_TO_GET_ISSUER_CERT_LOCALLY"
CERT_HAS_EXPIRED = "CERT_HAS_EXPIRED"
CERT_VERIFY_FAILED = "CERT_VERIFY_FAILED"

UNTRUSTED_CERTIFICATE_CODES = frozenset(
    {DEPTH_ZERO_SELF_SIGNED_CERT, SELF_SIGNED_CERT_IN_CHAIN}
)


class SarifHubError(Exception):
    """Base exception for all sarifhub errors.

    Catch this to handle any failure raised by the package with a
    single except clause.
    """
    pass


# =============================================================================
# Configuration Errors
# =============================================================================

class ConfigurationError(SarifHubError):
    """Base exception for configuration errors.

    Configuration errors are fatal and are never retried.
    """
    pass


class MissingCredentialError(ConfigurationError):
    """Required credential material (password, key, passphrase) is missing."""
    pass


class InvalidConfigError(ConfigurationError):
    """A configuration value is present but not acceptable."""
    pass


# =============================================================================
# Client Errors (network / HTTP)
# =============================================================================

class ClientError(SarifHubError):
    """Base exception for hub communication errors."""
    pass


class TransportError(ClientError):
    """Connection-level failure: DNS, connect, TLS, socket reset, timeout."""

    def __init__(self, message: str, code: str | None = None):
        super().__init__(message)
        self.code = code

    @property
    def is_certificate_untrusted(self) -> bool:
        """True when the hub presented a certificate we do not trust."""
        return self.code in UNTRUSTED_CERTIFICATE_CODES

    def __str__(self) -> str:
        message = super().__str__()
        if self.code and self.code not in message:
            return f"{self.code} {message}"
        return message


class HubTimeoutError(TransportError):
    """Network connection timed out."""

    def __init__(self, message: str = "Network connection timed-out."):
        super().__init__(message, code=ETIMEDOUT)


class RequestError(ClientError):
    """The hub answered with an unexpected HTTP status."""

    def __init__(self, message: str, status_code: int):
        super().__init__(message)
        self.status_code = status_code

    def __str__(self) -> str:
        return f"{self.status_code}: {super().__str__()}"


class HubRequestError(RequestError):
    """HTTP status error that carries a message supplied by the hub."""

    def __init__(self, status_message: str, status_code: int, hub_message: str | None = None):
        super().__init__(hub_message or status_message, status_code)
        self.status_message = status_message
        self.hub_message = hub_message or ""

    def __str__(self) -> str:
        return self.args[0]


class ResponseFormatError(RequestError):
    """Hub response body could not be interpreted (bad JSON, unexpected HTML)."""
    pass


class OriginMismatchError(ClientError):
    """A request or redirect target is outside the connection's origin."""
    pass


class AuthenticationError(ClientError):
    """Hub sign-in failed for a reason other than rejected credentials."""
    pass


class CertificateAuthenticationError(AuthenticationError):
    """The hub dropped the connection while validating a client certificate."""
    pass


# =============================================================================
# Protocol Errors
# =============================================================================

class ProtocolVersionError(SarifHubError):
    """Base exception for hub/client version negotiation errors."""
    pass


class IncompatibleClientError(ProtocolVersionError):
    """The hub explicitly rejected this client version."""
    pass


class UnsupportedHubFeatureError(ProtocolVersionError):
    """The requested operation needs a newer hub."""
    pass


# =============================================================================
# Cancellation
# =============================================================================

class OperationCancelledError(SarifHubError):
    """An operation was cancelled through its cancellation token.

    Not a `ClientError`, so handlers for network failures do not catch it.
    """

    def __init__(self, message: str = "Operation was cancelled."):
        super().__init__(message)


# =============================================================================
# Validation Errors
# =============================================================================

class ValidationError(SarifHubError):
    """Base exception for input validation errors."""
    pass


class InvalidAddressError(ValidationError):
    """Hub address string could not be parsed."""
    pass


class InvalidRecordIdError(ValidationError):
    """A project or analysis identifier is malformed or lost precision."""
    pass
