"""Download SARIF results from the hub to a local file."""

import asyncio
import logging
from collections.abc import Callable
from pathlib import Path

from .client import HubClient, SarifSearchOptions
from .core.exceptions import OperationCancelledError

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[int, int | None], None]


async def download_sarif(
    client: HubClient,
    destination: str | Path,
    analysis_id: str | int,
    base_analysis_id: str | int | None = None,
    options: SarifSearchOptions | None = None,
    progress: ProgressCallback | None = None,
    log: logging.Logger | None = None,
) -> int:
    """Stream the SARIF of an analysis, or its difference from a base analysis, to `destination`.

    `progress` is called with (bytes received, total bytes or None) after
    each chunk. On failure or cancellation the partial file is removed.

    Returns:
        Number of bytes written.

    Raises:
        OperationCancelledError: if the cancellation token fired, even when
            the aborted socket reported a reset first
    """
    log = log or logger
    options = options or SarifSearchOptions()
    cancellation = options.cancellation
    destination = Path(destination)

    if base_analysis_id is None:
        response = await client.fetch_sarif_analysis_stream(analysis_id, options)
    else:
        response = await client.fetch_sarif_analysis_difference_stream(analysis_id, base_analysis_id, options)

    total = response.content_length
    received = 0
    log.info(f"Downloading SARIF to {destination}", extra={"event": "sarif_download", "url": str(response.url)})
    try:
        # Opened inline so a task cancellation cannot strand an open handle.
        handle = destination.open("wb")
    except BaseException:
        await response.aclose()
        raise

    try:
        try:
            async for chunk in response.aiter_bytes():
                await asyncio.to_thread(handle.write, chunk)
                received += len(chunk)
                if progress is not None:
                    progress(received, total)
        finally:
            await asyncio.to_thread(handle.close)
    except BaseException as e:
        await response.aclose()
        await asyncio.to_thread(destination.unlink, missing_ok=True)
        if (
            cancellation is not None
            and cancellation.is_cancellation_requested
            and not isinstance(e, OperationCancelledError)
            and isinstance(e, Exception)
        ):
            log.info(f"Download cancelled; discarding {e!r}")
            raise cancellation.create_cancellation_error() from e
        log.info(f"Removed partial download {destination}: {e!r}")
        raise

    log.info(
        f"Downloaded {received} bytes to {destination}",
        extra={"event": "sarif_download_done", "url": str(response.url)},
    )
    return received
