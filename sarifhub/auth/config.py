"""Authentication option models for hub sign-in."""

from collections.abc import Awaitable, Callable
from enum import Enum
from pathlib import Path
from typing import Annotated, Literal

from pydantic import BaseModel, ConfigDict, Field

from ..core.exceptions import InvalidConfigError, MissingCredentialError
from ..pem import HubUserKey

SecretProvider = Callable[[], Awaitable[str]]


class AuthMethod(str, Enum):
    ANONYMOUS = "anonymous"
    PASSWORD = "password"
    CERTIFICATE = "certificate"


class AnonymousAuth(BaseModel):
    """Anonymous access: drop any session and sign in as nobody."""

    model_config = ConfigDict(frozen=True)

    method: Literal[AuthMethod.ANONYMOUS] = AuthMethod.ANONYMOUS


class PasswordAuth(BaseModel):
    """User name and password sign-in.

    Exactly one of `password_provider` and `password_file` must be set;
    this is checked at sign-in so the failure is a configuration error.
    """

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    method: Literal[AuthMethod.PASSWORD] = AuthMethod.PASSWORD
    username: str = Field(..., min_length=1, description="Hub user name")
    password_provider: SecretProvider | None = Field(
        default=None, description="Retrieves the password, e.g. from a secret store or prompt"
    )
    password_file: Path | None = Field(default=None, description="File containing the password")


class CertificateAuth(BaseModel):
    """TLS client certificate sign-in."""

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    method: Literal[AuthMethod.CERTIFICATE] = AuthMethod.CERTIFICATE
    key: HubUserKey | None = Field(default=None, description="Loaded certificate and key")
    passphrase_provider: SecretProvider | None = Field(
        default=None, description="Retrieves the key passphrase; required for protected keys"
    )


AuthenticationOptions = Annotated[
    AnonymousAuth | PasswordAuth | CertificateAuth,
    Field(discriminator="method"),
]


def parse_auth_method(auth: str | AuthMethod | None) -> AuthMethod | None:
    """Parse an authentication mode setting.

    Empty means "infer from the credentials". Unrecognized values are
    rejected instead of silently falling back to a default.
    """
    if auth is None or isinstance(auth, AuthMethod):
        return auth
    text = auth.strip().lower()
    if not text:
        return None
    try:
        return AuthMethod(text)
    except ValueError:
        valid = ", ".join(m.value for m in AuthMethod)
        raise InvalidConfigError(
            f"Unknown hub authentication mode '{auth}'; expected one of: {valid}"
        ) from None


def build_authentication_options(
    auth: str | AuthMethod | None = None,
    hubuser: str | None = None,
    password_provider: SecretProvider | None = None,
    password_file: str | Path | None = None,
    user_key: HubUserKey | None = None,
    passphrase_provider: SecretProvider | None = None,
) -> AnonymousAuth | PasswordAuth | CertificateAuth:
    """Select the authentication method, explicitly or from the populated credentials.

    Inference order: a client key means certificate, a user name means
    password, otherwise anonymous.
    """
    method = parse_auth_method(auth)
    if method is None:
        if user_key is not None:
            method = AuthMethod.CERTIFICATE
        elif hubuser:
            method = AuthMethod.PASSWORD
        else:
            method = AuthMethod.ANONYMOUS

    if method is AuthMethod.CERTIFICATE:
        return CertificateAuth(key=user_key, passphrase_provider=passphrase_provider)
    if method is AuthMethod.PASSWORD:
        if not hubuser:
            raise MissingCredentialError(
                "Password authentication mode was selected, but user name was not provided."
            )
        return PasswordAuth(
            username=hubuser,
            password_provider=password_provider,
            password_file=Path(password_file) if password_file else None,
        )
    return AnonymousAuth()
