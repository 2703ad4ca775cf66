"""Hub version and capability negotiation."""

import logging
from enum import Enum
from urllib.parse import quote

from packaging.version import InvalidVersion, Version
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from .config import ConnectionOptions
from .core.cancellation import CancellationToken
from .core.exceptions import IncompatibleClientError, ResponseFormatError
from .responses import create_hub_request_error, read_json
from .transport import HTTP_NOT_FOUND, HTTP_OK, RequestOptions, TransportConnection

logger = logging.getLogger(__name__)

# Hubs above this version number (7.0) support result limiting and SARIF search.
LEGACY_HUB_VERSION_NUMBER = 700


class HubCapabilities(BaseModel):
    model_config = ConfigDict(extra="allow")

    openapi: bool | None = None


class VersionCompatibilityInfo(BaseModel):
    """Response of `/command/check_version/<client>/`."""

    model_config = ConfigDict(extra="allow", populate_by_name=True)

    hub_version: str = Field(default="", alias="hubVersion")
    hub_version_number: int = Field(default=0, alias="hubVersionNumber")
    hub_protocol: int | None = Field(default=None, alias="hubProtocol")
    client_ok: bool | None = Field(default=None, alias="clientOK")
    message: str | None = None
    capabilities: HubCapabilities | None = None


class CapabilityInfo(BaseModel):
    """Hub features derived from the version compatibility check."""

    model_config = ConfigDict(frozen=True)

    hub_version_string: str = ""
    hub_version_number: int = 0
    open_api: bool = False
    result_limiting: bool = False
    sarif_search: bool = False

    @property
    def hub_version(self) -> Version | None:
        """The hub version string as a comparable version, if well formed."""
        if not self.hub_version_string:
            return None
        try:
            return Version(self.hub_version_string)
        except InvalidVersion:
            return None


def capability_info_from(info: VersionCompatibilityInfo | None) -> CapabilityInfo:
    """Extract hub feature capabilities; `None` means a pre-7.1 hub."""
    if info is None:
        return CapabilityInfo()
    newer_hub = info.hub_version_number > LEGACY_HUB_VERSION_NUMBER
    return CapabilityInfo(
        hub_version_string=info.hub_version,
        hub_version_number=info.hub_version_number,
        open_api=bool(info.capabilities and info.capabilities.openapi is True),
        result_limiting=newer_hub,
        sarif_search=newer_hub,
    )


class CapabilityState(Enum):
    UNKNOWN = "unknown"
    UNSUPPORTED = "unsupported"
    KNOWN = "known"


class CapabilityCache:
    """Remembers the outcome of the version check.

    UNKNOWN: not fetched yet. UNSUPPORTED: the hub has no version check
    endpoint, never ask again. KNOWN: `info` holds the payload.
    """

    def __init__(self) -> None:
        self.state = CapabilityState.UNKNOWN
        self.info: VersionCompatibilityInfo | None = None

    def set_known(self, info: VersionCompatibilityInfo) -> None:
        self.state = CapabilityState.KNOWN
        self.info = info

    def set_unsupported(self) -> None:
        self.state = CapabilityState.UNSUPPORTED
        self.info = None


class ProtocolNegotiator:
    """Queries the hub for version compatibility. Works before sign-in."""

    def __init__(
        self,
        connection: TransportConnection,
        options: ConnectionOptions,
        logger: logging.Logger | None = None,
    ) -> None:
        self.connection = connection
        self.options = options
        self.logger = logger or logging.getLogger(__name__)
        self.cache = CapabilityCache()

    def version_check_resource(self) -> str:
        return (
            f"/command/check_version/{quote(self.options.client_name, safe='')}/"
            f"?version={quote(self.options.client_version, safe='')}"
            "&capability=openapi"
        )

    async def get_version_compatibility_info(
        self, cancellation: CancellationToken | None = None
    ) -> VersionCompatibilityInfo | None:
        """Fetch the compatibility payload once; `None` for hubs that predate it."""
        if self.cache.state is CapabilityState.UNSUPPORTED:
            return None
        if self.cache.state is CapabilityState.KNOWN:
            return self.cache.info

        response = await self.connection.request(
            self.version_check_resource(), RequestOptions(cancellation=cancellation)
        )
        if response.status_code == HTTP_NOT_FOUND:
            # check_version was added in hub 7.1.
            await response.aclose()
            self.logger.info("Hub does not support version compatibility check")
            self.cache.set_unsupported()
            return None
        if response.status_code != HTTP_OK:
            # The error format is not known until this call succeeds.
            raise await create_hub_request_error(response, None, self.logger)

        payload = await read_json(response, self.logger)
        try:
            info = VersionCompatibilityInfo.model_validate(payload)
        except ValidationError as e:
            raise ResponseFormatError(
                f"Hub version check response is malformed: {e}", response.status_code
            ) from e
        self.logger.info(
            f"Hub version: {info.hub_version} ({info.hub_version_number})",
            extra={"event": "hub_version", "hub_version": info.hub_version},
        )
        self.cache.set_known(info)
        return info

    async def get_capability_info(self, cancellation: CancellationToken | None = None) -> CapabilityInfo:
        """Derive hub capabilities.

        Raises:
            IncompatibleClientError: if the hub rejects this client version
        """
        info = await self.get_version_compatibility_info(cancellation)
        if info is not None and info.client_ok is False:
            message = info.message or (
                f"Client {self.options.client_name} {self.options.client_version} "
                "is not compatible with the hub; upgrade required."
            )
            self.logger.error(message)
            raise IncompatibleClientError(message)
        capabilities = capability_info_from(info)
        self.logger.debug(
            f"Hub capabilities: openAPI={capabilities.open_api}, "
            f"resultLimiting={capabilities.result_limiting}, sarifSearch={capabilities.sarif_search}",
            extra={"event": "hub_capabilities", "api": "openapi" if capabilities.open_api else "legacy"},
        )
        return capabilities
