"""Hub authentication: option models and the sign-in engine."""

from .config import (
    AnonymousAuth,
    AuthenticationOptions,
    AuthMethod,
    CertificateAuth,
    PasswordAuth,
    build_authentication_options,
    parse_auth_method,
)
from .engine import AuthenticationEngine

__all__ = [
    "AuthMethod",
    "AnonymousAuth",
    "PasswordAuth",
    "CertificateAuth",
    "AuthenticationOptions",
    "AuthenticationEngine",
    "build_authentication_options",
    "parse_auth_method",
]
