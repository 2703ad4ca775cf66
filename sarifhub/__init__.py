"""sarifhub: async client for fetching SARIF analysis results from a hub."""

from .address import HubAddress, format_user_credential_key, parse_hub_address
from .auth import (
    AnonymousAuth,
    AuthenticationEngine,
    AuthMethod,
    CertificateAuth,
    PasswordAuth,
    build_authentication_options,
)
from .client import HubClient, HubRequestOptions, SarifSearchOptions
from .config import ConnectionOptions, HubClientSettings
from .core.cancellation import CancellationToken
from .download import download_sarif
from .models import AnalysisRecord, ProjectRecord, parse_record_id
from .pem import HubUserKey
from .protocol import CapabilityInfo, VersionCompatibilityInfo
from .transport import HubResponse, RequestOptions, TransportConnection

__version__ = "0.4.0"

__all__ = [
    "HubAddress",
    "parse_hub_address",
    "format_user_credential_key",
    "AuthMethod",
    "AnonymousAuth",
    "PasswordAuth",
    "CertificateAuth",
    "AuthenticationEngine",
    "build_authentication_options",
    "HubClient",
    "HubRequestOptions",
    "SarifSearchOptions",
    "ConnectionOptions",
    "HubClientSettings",
    "CancellationToken",
    "download_sarif",
    "ProjectRecord",
    "AnalysisRecord",
    "parse_record_id",
    "HubUserKey",
    "CapabilityInfo",
    "VersionCompatibilityInfo",
    "HubResponse",
    "RequestOptions",
    "TransportConnection",
]
