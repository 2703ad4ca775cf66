"""
Hub sign-in for the three authentication methods.

Each method builds a `SignInRequest` for the hub generation in use;
`AuthenticationEngine.sign_in` posts it and interprets the outcome.
A 403 means the credentials were rejected and is returned as a message;
every other failure is raised.
"""

import base64
import json
import logging
from dataclasses import dataclass, field
from urllib.parse import urlencode

from ..core.cancellation import CancellationToken
from ..core.exceptions import (
    ECONNRESET,
    CertificateAuthenticationError,
    InvalidConfigError,
    MissingCredentialError,
    RequestError,
    ResponseFormatError,
    TransportError,
)
from ..core.files import read_text_file
from ..protocol import CapabilityInfo, ProtocolNegotiator
from ..responses import RESPONSE_TRY_PLAINTEXT, create_hub_request_error, error_format_for
from ..transport import HTTP_FORBIDDEN, HTTP_OK, RequestOptions, TransportConnection
from .config import AnonymousAuth, AuthenticationOptions, CertificateAuth, PasswordAuth

logger = logging.getLogger(__name__)

HUB_PARAM_TRUE = "1"

# Hubs up to 7.1 only honour response_try_plaintext in the URL,
# so it is sent in both the URL and the form.
LEGACY_SIGN_IN_RESOURCE = f"/?{RESPONSE_TRY_PLAINTEXT}={HUB_PARAM_TRUE}"

SESSION_CREATE_ANONYMOUS = "/session/create-anonymous/"
SESSION_CREATE_BASIC_AUTH = "/session/create-basic-auth/"
SESSION_CREATE_TLS_CLIENT_CERTIFICATE = "/session/create-tls-client-certificate/"

SESSION_KEY_BEARER = "bearer"
SESSION_RESPONSE_MAX_LENGTH = 65536

FORM_CONTENT_TYPE = "application/x-www-form-urlencoded"


@dataclass
class SignInRequest:
    resource: str
    form: dict[str, str]
    headers: dict[str, str] = field(default_factory=dict)
    creates_session: bool = False


def legacy_sign_in_form(**fields: str) -> dict[str, str]:
    form = {
        "sif_sign_in": HUB_PARAM_TRUE,
        "sif_ignore_empty_email": HUB_PARAM_TRUE,
        "sif_log_out_competitor": HUB_PARAM_TRUE,
        RESPONSE_TRY_PLAINTEXT: HUB_PARAM_TRUE,
    }
    form.update(fields)
    return form


def session_request(resource: str, headers: dict[str, str] | None = None) -> SignInRequest:
    return SignInRequest(
        resource=resource,
        form={"key": SESSION_KEY_BEARER},
        headers=headers or {},
        creates_session=True,
    )


def format_basic_auth_header(user: str, password: str) -> str:
    token = base64.b64encode(f"{user}:{password}".encode("utf-8")).decode("ascii")
    return f"Basic {token}"


async def resolve_password(auth: PasswordAuth) -> str:
    """Get the password from the provider or the password file.

    Raises:
        InvalidConfigError: if both a provider and a file are configured
        MissingCredentialError: if neither is configured
    """
    if auth.password_provider is not None and auth.password_file is not None:
        raise InvalidConfigError("Configure either a password provider or a password file, not both.")
    if auth.password_provider is not None:
        return await auth.password_provider()
    if auth.password_file is not None:
        content = await read_text_file(auth.password_file)
        return content.strip()
    raise MissingCredentialError("Hub user password was not provided.")


async def anonymous_sign_in(
    connection: TransportConnection, capabilities: CapabilityInfo
) -> SignInRequest | None:
    # Drop whatever session we had.
    connection.clear_cookies()
    connection.bearer_token = None
    if capabilities.open_api:
        return session_request(SESSION_CREATE_ANONYMOUS)
    # Older hubs need nothing more once the session cookies are gone.
    return None


async def password_sign_in(auth: PasswordAuth, capabilities: CapabilityInfo) -> SignInRequest:
    password = await resolve_password(auth)
    if capabilities.open_api:
        return session_request(
            SESSION_CREATE_BASIC_AUTH,
            {"Authorization": format_basic_auth_header(auth.username, password)},
        )
    return SignInRequest(
        resource=LEGACY_SIGN_IN_RESOURCE,
        form=legacy_sign_in_form(sif_username=auth.username, sif_password=password),
    )


async def certificate_sign_in(
    auth: CertificateAuth, connection: TransportConnection, capabilities: CapabilityInfo
) -> SignInRequest:
    if auth.key is None:
        raise MissingCredentialError(
            "Certificate authentication mode was selected, but certificate and key were not provided."
        )
    if auth.key.key_is_protected and auth.passphrase_provider is None and not connection.session.has_passphrase:
        raise MissingCredentialError(
            "Client certificate key is protected, but no passphrase was provided."
        )
    # The certificate itself is presented by the TLS layer.
    if capabilities.open_api:
        return session_request(SESSION_CREATE_TLS_CLIENT_CERTIFICATE)
    return SignInRequest(
        resource=LEGACY_SIGN_IN_RESOURCE,
        form=legacy_sign_in_form(sif_use_tls=HUB_PARAM_TRUE),
    )


class AuthenticationEngine:
    """Signs in to the hub over an existing connection."""

    def __init__(
        self,
        connection: TransportConnection,
        negotiator: ProtocolNegotiator,
        authentication: AuthenticationOptions,
        logger: logging.Logger | None = None,
    ) -> None:
        self.connection = connection
        self.negotiator = negotiator
        self.authentication = authentication
        self.logger = logger or logging.getLogger(__name__)

    async def sign_in(self, cancellation: CancellationToken | None = None) -> str | None:
        """Try to sign in with the configured credentials.

        Returns:
            None on success, or the hub's failure message if the
            credentials were rejected.

        Raises:
            ConfigurationError: if the configured method lacks its credentials
            CertificateAuthenticationError: if the hub reset the connection
                while checking the client certificate
            ClientError: on any other network or HTTP failure
        """
        capabilities = await self.negotiator.get_capability_info(cancellation)
        auth = self.authentication
        if isinstance(auth, AnonymousAuth):
            request = await anonymous_sign_in(self.connection, capabilities)
        elif isinstance(auth, PasswordAuth):
            request = await password_sign_in(auth, capabilities)
        elif isinstance(auth, CertificateAuth):
            request = await certificate_sign_in(auth, self.connection, capabilities)
        else:
            raise InvalidConfigError("Could not determine hub authentication method.")

        self.logger.info(
            f"Signing in to {self.connection.address} as {auth.method.value}",
            extra={
                "event": "hub_sign_in",
                "hub": str(self.connection.address),
                "auth_method": auth.method.value,
                "api": "openapi" if capabilities.open_api else "legacy",
            },
        )
        if request is None:
            return None

        try:
            bearer_token = await self._post(request, capabilities, cancellation)
        except RequestError as e:
            if e.status_code != HTTP_FORBIDDEN:
                raise
            # Ordinary sign-in failure.
            self.logger.info(f"Sign-in rejected: {e}", extra={"event": "hub_sign_in_rejected"})
            return e.args[0]
        except TransportError as e:
            if isinstance(auth, CertificateAuth) and e.code == ECONNRESET:
                # A rejected client certificate shows up as a reset socket.
                raise CertificateAuthenticationError(
                    "Certificate authentication failed.  Connection reset."
                ) from e
            raise

        if bearer_token is not None:
            self.logger.info("Using bearer token authorization.")
            self.connection.bearer_token = bearer_token
        self.logger.info("Sign-in succeeded", extra={"event": "hub_sign_in_ok"})
        return None

    async def _post(
        self,
        request: SignInRequest,
        capabilities: CapabilityInfo,
        cancellation: CancellationToken | None,
    ) -> str | None:
        self.logger.info("Posting signin data...")
        headers = {"Content-Type": FORM_CONTENT_TYPE}
        headers.update(request.headers)
        response = await self.connection.request(
            request.resource,
            RequestOptions(method="POST", headers=headers, cancellation=cancellation),
            urlencode(request.form),
        )
        if response.status_code != HTTP_OK:
            error_format = error_format_for(response, capabilities.open_api)
            raise await create_hub_request_error(response, error_format, self.logger)

        if not request.creates_session:
            await response.ignore()
            return None

        text = await response.aread_text(SESSION_RESPONSE_MAX_LENGTH)
        try:
            session_info = json.loads(text)
        except json.JSONDecodeError as e:
            raise ResponseFormatError(f"Hub session response is not valid JSON: {e}", response.status_code) from e
        bearer = session_info.get(SESSION_KEY_BEARER) if isinstance(session_info, dict) else None
        if not isinstance(bearer, str) or not bearer:
            raise ResponseFormatError("Hub session response did not include a bearer token.", response.status_code)
        return bearer
