"""Configuration models for hub connections."""

import os
from collections.abc import Awaitable, Callable
from typing import TYPE_CHECKING

from pydantic import BaseModel, ConfigDict, Field

from .auth.config import build_authentication_options
from .core.exceptions import InvalidConfigError
from .core.files import read_bytes_file
from .pem import HubUserKey

if TYPE_CHECKING:
    import logging

    from .client import HubClient

DEFAULT_TIMEOUT_SECONDS = 300.0
DEFAULT_CLIENT_NAME = "sarifhub"
DEFAULT_CLIENT_VERSION = "0.4.0"

SecretProvider = Callable[[], Awaitable[str]]


class ConnectionOptions(BaseModel):
    """Options fixed for the lifetime of one hub connection."""

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    ca_certificate: str | bytes | None = Field(
        default=None, description="CA certificate contents (PEM text or DER bytes)"
    )
    client_certificate: str | None = Field(default=None, description="Client certificate PEM text")
    client_key: str | None = Field(default=None, description="Client certificate key PEM text")
    passphrase_provider: SecretProvider | None = Field(
        default=None, description="Retrieves the client key passphrase when it is needed"
    )
    timeout: float = Field(default=DEFAULT_TIMEOUT_SECONDS, gt=0, description="Socket timeout in seconds")
    client_name: str = Field(default=DEFAULT_CLIENT_NAME, description="Client name reported to the hub")
    client_version: str = Field(default=DEFAULT_CLIENT_VERSION, description="Client version reported to the hub")

    @property
    def requires_tls(self) -> bool:
        return bool(self.ca_certificate or self.client_certificate)


class HubClientSettings(BaseModel):
    """Hub client settings, typically loaded from the environment."""

    address: str | None = None
    cacert: str | None = None
    auth: str | None = None
    hubuser: str | None = None
    hubpwfile: str | None = None
    hubcert: str | None = None
    hubkey: str | None = None
    timeout: float = Field(default=DEFAULT_TIMEOUT_SECONDS, gt=0)
    client_name: str = DEFAULT_CLIENT_NAME
    client_version: str = DEFAULT_CLIENT_VERSION
    log_level: str = "WARNING"
    log_file: str | None = None

    @classmethod
    def from_env(cls) -> "HubClientSettings":
        """Load settings from SARIFHUB_* environment variables."""
        return cls(
            address=os.environ.get("SARIFHUB_ADDRESS") or None,
            cacert=os.environ.get("SARIFHUB_CACERT") or None,
            auth=os.environ.get("SARIFHUB_AUTH") or None,
            hubuser=os.environ.get("SARIFHUB_USER") or None,
            hubpwfile=os.environ.get("SARIFHUB_PASSWORD_FILE") or None,
            hubcert=os.environ.get("SARIFHUB_CERT") or None,
            hubkey=os.environ.get("SARIFHUB_KEY") or None,
            timeout=float(os.environ.get("SARIFHUB_TIMEOUT", DEFAULT_TIMEOUT_SECONDS)),
            client_name=os.environ.get("SARIFHUB_CLIENT_NAME", DEFAULT_CLIENT_NAME),
            client_version=os.environ.get("SARIFHUB_CLIENT_VERSION", DEFAULT_CLIENT_VERSION),
            log_level=os.environ.get("SARIFHUB_LOG_LEVEL", "WARNING"),
            log_file=os.environ.get("SARIFHUB_LOG_FILE") or None,
        )

    async def create_client(
        self,
        password_provider: SecretProvider | None = None,
        passphrase_provider: SecretProvider | None = None,
        logger: "logging.Logger | None" = None,
    ) -> "HubClient":
        """Read certificate material from disk and build a `HubClient`.

        Raises:
            InvalidConfigError: if the authentication mode is not recognized
            MissingCredentialError: if the selected mode lacks its credentials
        """
        # Lazy import; client imports this module.
        from .client import HubClient

        if not self.address:
            raise InvalidConfigError("Hub address is required.")

        ca_certificate = await read_bytes_file(self.cacert) if self.cacert else None
        user_key: HubUserKey | None = None
        auth_mode = (self.auth or "").strip().lower()
        if self.hubcert and auth_mode in ("", "certificate"):
            user_key = await HubUserKey.load(self.hubcert, self.hubkey)

        authentication = build_authentication_options(
            auth=self.auth,
            hubuser=self.hubuser,
            # A configured password file takes the place of the prompt.
            password_provider=None if self.hubpwfile else password_provider,
            password_file=self.hubpwfile,
            user_key=user_key,
            passphrase_provider=passphrase_provider,
        )
        options = ConnectionOptions(
            ca_certificate=ca_certificate,
            timeout=self.timeout,
            client_name=self.client_name,
            client_version=self.client_version,
        )
        return HubClient(self.address, options, authentication, logger=logger)
