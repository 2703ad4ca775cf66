"""Interpretation of hub response bodies: JSON payloads and error messages."""

import json
import logging
from enum import Enum
from typing import TYPE_CHECKING, Any

from .core.exceptions import HubRequestError, RequestError, ResponseFormatError

if TYPE_CHECKING:
    from .transport import HubResponse

logger = logging.getLogger(__name__)

MAX_ERROR_MESSAGE_LENGTH = 4096

RESPONSE_TRY_PLAINTEXT = "response_try_plaintext"


class ResponseFormat(str, Enum):
    """Body format the hub is expected to use for error responses."""

    HTML = "text/html"
    TEXT = "text/plain"
    JSON = "application/json"


def parse_hub_param_boolean(value: str | None) -> bool | None:
    """Parse a hub query or form parameter as a boolean."""
    if value is None:
        return None
    if value in ("yes", "1"):
        return True
    if value in ("no", "0"):
        return False
    return None


def looks_like_html(text: str) -> bool:
    head = text.lstrip()[:64].lower()
    return head.startswith("<!doctype") or head.startswith("<html")


def error_format_for(response: "HubResponse", open_api: bool) -> ResponseFormat:
    """Decide how an error body should be read.

    Modern hubs answer with JSON; legacy hubs answer with plain text only
    when `response_try_plaintext` was set on the request URL.
    """
    if open_api:
        return ResponseFormat.JSON
    try_plaintext = parse_hub_param_boolean(response.url.params.get(RESPONSE_TRY_PLAINTEXT))
    if try_plaintext:
        return ResponseFormat.TEXT
    return ResponseFormat.HTML


async def create_hub_request_error(
    response: "HubResponse",
    error_format: ResponseFormat | None,
    log: logging.Logger | None = None,
) -> RequestError:
    """Build an exception for a non-OK hub response, consuming its body.

    `None` for `error_format` means the format is unknown: JSON is tried,
    then plain text. HTML bodies are never used as message text.
    """
    log = log or logger
    status_error = response.status_error()
    if error_format is ResponseFormat.HTML:
        await response.aclose()
        return status_error

    response_text = await response.aread_text(MAX_ERROR_MESSAGE_LENGTH)
    if looks_like_html(response_text):
        log.info("Hub returned HTML, but plaintext was expected")
        return status_error

    error_message = response_text.strip()
    if error_format in (None, ResponseFormat.JSON):
        try:
            response_json = json.loads(response_text)
        except json.JSONDecodeError:
            # Not JSON; treat it as plain text.
            pass
        else:
            if isinstance(response_json, dict) and response_json.get("error"):
                error_message = str(response_json["error"])

    log.info(f"Hub Error Message: {error_message}", extra={"event": "hub_error", "status": response.status_code})
    return HubRequestError(response.reason_phrase, response.status_code, error_message)


async def read_json(response: "HubResponse", log: logging.Logger | None = None) -> Any:
    """Read a whole response body as JSON."""
    log = log or logger
    text = await response.aread_text()
    try:
        return json.loads(text)
    except json.JSONDecodeError as e:
        if looks_like_html(text):
            log.warning("Hub returned HTML, but JSON was expected")
            message = "Hub returned an HTML page where JSON was expected"
        else:
            log.warning(f"Could not parse hub response as JSON: {e}")
            message = f"Hub response is not valid JSON: {e}"
        raise ResponseFormatError(message, response.status_code) from e
