"""
Hub client: capability negotiation, sign-in, and resource queries.

    async with HubClient("hub.example.com:7340", ConnectionOptions(), AnonymousAuth()) as client:
        if await client.sign_in() is None:
            projects = await client.fetch_project_info("demo")
"""

import logging
from dataclasses import dataclass
from typing import Any
from urllib.parse import quote

from .address import HubAddress, parse_hub_address
from .auth.config import AnonymousAuth, AuthenticationOptions, CertificateAuth
from .auth.engine import AuthenticationEngine
from .config import ConnectionOptions
from .core.cancellation import CancellationToken
from .core.exceptions import ResponseFormatError, UnsupportedHubFeatureError
from .models import AnalysisRecord, ProjectRecord, parse_analysis_id_from_url, parse_record_id
from .protocol import CapabilityInfo, ProtocolNegotiator, VersionCompatibilityInfo
from .query import (
    analysis_list_params,
    difference_query,
    encode_query,
    project_search_params,
    sarif_params,
)
from .responses import create_hub_request_error, error_format_for, read_json
from .transport import HTTP_OK, HubResponse, RequestOptions, TransportConnection

logger = logging.getLogger(__name__)


@dataclass
class HubRequestOptions:
    cancellation: CancellationToken | None = None


@dataclass
class SarifSearchOptions(HubRequestOptions):
    """SARIF download options.

    `indent_length` < 0 requests compact output; `None` leaves the hub default.
    """

    warning_filter: str | None = None
    indent_length: int | None = None
    artifact_listing: bool | None = None


def _rows(payload: Any, status_code: int) -> list[dict[str, Any]]:
    if not isinstance(payload, dict):
        raise ResponseFormatError("Hub search response is not a JSON object", status_code)
    rows = payload.get("rows")
    if rows is None:
        return []
    if not isinstance(rows, list):
        raise ResponseFormatError("Hub search response 'rows' is not a list", status_code)
    return [row for row in rows if isinstance(row, dict)]


class HubClient:
    """Manages an HTTP session with a hub."""

    def __init__(
        self,
        address: str | HubAddress,
        options: ConnectionOptions | None = None,
        authentication: AuthenticationOptions | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        self.address = parse_hub_address(address) if isinstance(address, str) else address
        self.authentication = authentication if authentication is not None else AnonymousAuth()
        options = options or ConnectionOptions()
        if isinstance(self.authentication, CertificateAuth) and self.authentication.key is not None:
            # The client certificate is presented on every TLS connection.
            options = options.model_copy(
                update={
                    "client_certificate": self.authentication.key.cert,
                    "client_key": self.authentication.key.key,
                    "passphrase_provider": (
                        self.authentication.passphrase_provider or options.passphrase_provider
                    ),
                }
            )
        self.options = options
        self.logger = logger or logging.getLogger(__name__)
        self._connection: TransportConnection | None = None
        self._negotiator: ProtocolNegotiator | None = None
        self._engine: AuthenticationEngine | None = None

    def get_connection(self) -> TransportConnection:
        """The connection to the hub, created on first use."""
        if self._connection is None:
            self._connection = TransportConnection(self.address, self.options, logger=self.logger)
            self._negotiator = ProtocolNegotiator(self._connection, self.options, logger=self.logger)
            self._engine = AuthenticationEngine(
                self._connection, self._negotiator, self.authentication, logger=self.logger
            )
        return self._connection

    @property
    def negotiator(self) -> ProtocolNegotiator:
        self.get_connection()
        assert self._negotiator is not None
        return self._negotiator

    async def get_version_compatibility_info(
        self, options: HubRequestOptions | None = None
    ) -> VersionCompatibilityInfo | None:
        """Hub version compatibility; `None` for hubs older than 7.1."""
        cancellation = options.cancellation if options else None
        return await self.negotiator.get_version_compatibility_info(cancellation)

    async def get_capability_info(self, options: HubRequestOptions | None = None) -> CapabilityInfo:
        cancellation = options.cancellation if options else None
        return await self.negotiator.get_capability_info(cancellation)

    async def sign_in(self, options: HubRequestOptions | None = None) -> str | None:
        """Sign in to the hub.

        Returns:
            None on success, or the hub's message if the credentials were rejected.
        """
        self.get_connection()
        assert self._engine is not None
        cancellation = options.cancellation if options else None
        return await self._engine.sign_in(cancellation)

    async def fetch(self, resource: str, options: HubRequestOptions | None = None) -> HubResponse:
        """Fetch a raw hub resource. The caller must consume or close the response.

        Raises:
            RequestError: if the hub does not answer with HTTP 200
        """
        cancellation = options.cancellation if options else None
        capabilities = await self.get_capability_info(options)
        connection = self.get_connection()
        response = await connection.request(resource, RequestOptions(cancellation=cancellation))
        if response.status_code != HTTP_OK:
            error_format = error_format_for(response, capabilities.open_api)
            raise await create_hub_request_error(response, error_format, self.logger)
        self.logger.debug("Received OK response")
        return response

    async def fetch_json(self, resource: str, options: HubRequestOptions | None = None) -> Any:
        response = await self.fetch(resource, options)
        return await read_json(response, self.logger)

    async def fetch_project_info(
        self,
        search: str | None = None,
        options: HubRequestOptions | None = None,
        result_limit: int | None = None,
    ) -> list[ProjectRecord]:
        """List projects, optionally filtered by name or tree path.

        Raises:
            InvalidRecordIdError: if a project id is a number too large to be exact
        """
        capabilities = await self.get_capability_info(options)
        params = project_search_params(capabilities, search, result_limit)
        payload = await self.fetch_json(f"/project_search.json?{encode_query(params)}", options)

        projects: list[ProjectRecord] = []
        for row in _rows(payload, HTTP_OK):
            if capabilities.open_api:
                raw_id, name, path = row.get("projectId"), row.get("project"), row.get("path")
            else:
                raw_id, name, path = row.get("Project ID"), row.get("Project"), row.get("Path")
            if raw_id is None or name is None or path is None:
                continue
            projects.append(ProjectRecord(id=parse_record_id(raw_id), name=str(name), path=str(path)))
        self.logger.info(f"Received {len(projects)} projects")
        return projects

    async def fetch_analysis_info(
        self,
        project_id: str | int,
        options: HubRequestOptions | None = None,
        result_limit: int | None = None,
    ) -> list[AnalysisRecord]:
        """List a project's analyses, newest first."""
        project_id = parse_record_id(project_id)
        capabilities = await self.get_capability_info(options)
        params = analysis_list_params(capabilities, result_limit)
        resource = f"/project/{quote(project_id, safe='')}.json?{encode_query(params)}"
        payload = await self.fetch_json(resource, options)

        analyses: list[AnalysisRecord] = []
        for row in _rows(payload, HTTP_OK):
            name = row.get("analysis") if capabilities.open_api else row.get("Analysis")
            # Legacy rows carry the id only inside the analysis URL.
            analysis_id = parse_analysis_id_from_url(row.get("url"))
            if analysis_id is None and capabilities.open_api and row.get("analysisId") is not None:
                analysis_id = parse_record_id(row["analysisId"])
            if analysis_id is None or name is None:
                continue
            analyses.append(AnalysisRecord(id=analysis_id, name=str(name)))
        self.logger.info(f"Received {len(analyses)} analyses for project {project_id}")
        return analyses

    async def fetch_sarif_analysis_stream(
        self, analysis_id: str | int, options: SarifSearchOptions | None = None
    ) -> HubResponse:
        """Open the SARIF results of one analysis as a live stream."""
        options = options or SarifSearchOptions()
        analysis_id = parse_record_id(analysis_id)
        capabilities = await self.get_capability_info(options)
        params = sarif_params(
            capabilities, options.warning_filter, options.indent_length, options.artifact_listing
        )
        resource = f"/analysis/{quote(analysis_id, safe='')}-allwarnings.sarif"
        if params:
            resource += f"?{encode_query(params)}"
        return await self.fetch(resource, options)

    async def fetch_sarif_analysis_difference_stream(
        self,
        head_analysis_id: str | int,
        base_analysis_id: str | int,
        options: SarifSearchOptions | None = None,
    ) -> HubResponse:
        """Open the SARIF results present in the head analysis but not in the base.

        Raises:
            UnsupportedHubFeatureError: if the hub predates SARIF search (7.1)
        """
        options = options or SarifSearchOptions()
        head_analysis_id = parse_record_id(head_analysis_id)
        base_analysis_id = parse_record_id(base_analysis_id)
        capabilities = await self.get_capability_info(options)
        if not capabilities.sarif_search:
            raise UnsupportedHubFeatureError(
                "Hub version 7.1 or later is required to get warning difference search results in SARIF format."
            )
        # Most artifacts are shared with the base analysis.
        artifact_listing = False if options.artifact_listing is None else options.artifact_listing
        params = difference_query(head_analysis_id, base_analysis_id)
        params.update(
            sarif_params(capabilities, options.warning_filter, options.indent_length, artifact_listing)
        )
        return await self.fetch(f"/warning_detail_search.sarif?{encode_query(params)}", options)

    async def aclose(self) -> None:
        if self._connection is not None:
            await self._connection.aclose()

    async def __aenter__(self) -> "HubClient":
        return self

    async def __aexit__(self, exc_type: object, exc_val: object, exc_tb: object) -> None:
        await self.aclose()
