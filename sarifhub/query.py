"""Builders for hub search queries and grid parameters."""

import json
from collections.abc import Mapping
from urllib.parse import quote, urlencode

from .protocol import CapabilityInfo
from .responses import RESPONSE_TRY_PLAINTEXT

HUB_PARAM_TRUE = "1"
HUB_PARAM_FALSE = "0"

PROJECT_TREE_SEPARATOR = "/"


def encode_search_string_literal(text: str) -> str:
    """Quote a string for use as a literal term in a hub search."""
    escaped = text.replace("\\", "\\\\").replace('"', '\\"').replace("'", "\\'")
    return f'"{escaped}"'


def encode_query(params: Mapping[str, str]) -> str:
    """Percent-encode query parameters; spaces become `%20`."""
    return urlencode(params, quote_via=quote)


def _compact_json(value: object) -> str:
    return json.dumps(value, separators=(",", ":"))


def project_search_params(
    capabilities: CapabilityInfo,
    search: str | None = None,
    limit: int | None = None,
) -> dict[str, str]:
    params: dict[str, str] = {}
    if capabilities.open_api:
        grid: dict[str, object] = {
            "orderBy": [{"projectId": "ASCENDING"}],
            "visible": {"projectId": True, "path": True},
        }
        if limit is not None:
            grid["limit"] = limit
        params["sprjgrid"] = _compact_json(grid)
    else:
        grid_spec = "[project id.sort:asc][project id.visible:1][path.visible:1]"
        if capabilities.result_limiting and limit is not None:
            grid_spec += f"[limit:{limit}]"
        params["sprjgrid"] = grid_spec
        params[RESPONSE_TRY_PLAINTEXT] = HUB_PARAM_TRUE
    if search:
        # A separator means the term is a project tree path.
        field_name = "ptree_path" if PROJECT_TREE_SEPARATOR in search else "project"
        params["query"] = f"{field_name}={encode_search_string_literal(search)}"
    return params


def analysis_list_params(capabilities: CapabilityInfo, limit: int | None = None) -> dict[str, str]:
    params: dict[str, str] = {}
    if capabilities.open_api:
        grid: dict[str, object] = {"orderBy": [{"analysisId": "DESCENDING"}]}
        if limit is not None:
            grid["limit"] = limit
        params["anlgrid"] = _compact_json(grid)
    else:
        grid_spec = "[analysis id.sort:desc]"
        if capabilities.result_limiting and limit is not None:
            grid_spec += f"[limit:{limit}]"
        params["anlgrid"] = grid_spec
        params[RESPONSE_TRY_PLAINTEXT] = HUB_PARAM_TRUE
    return params


def sarif_params(
    capabilities: CapabilityInfo,
    warning_filter: str | None = None,
    indent_length: int | None = None,
    artifact_listing: bool | None = None,
) -> dict[str, str]:
    """Query parameters for SARIF downloads.

    A negative `indent_length` asks for compact output.
    """
    params: dict[str, str] = {}
    if warning_filter:
        params["filter"] = warning_filter
    if indent_length is not None:
        params["indent"] = str(indent_length) if indent_length >= 0 else ""
    if artifact_listing is not None:
        params["artifacts"] = HUB_PARAM_TRUE if artifact_listing else HUB_PARAM_FALSE
    if not capabilities.open_api:
        params[RESPONSE_TRY_PLAINTEXT] = HUB_PARAM_TRUE
    return params


def difference_query(head_analysis_id: str, base_analysis_id: str) -> dict[str, str]:
    return {
        "scope": f"aid:{head_analysis_id}",
        "query": f"aid:{head_analysis_id} DIFFERENCE aid:{base_analysis_id}",
    }
