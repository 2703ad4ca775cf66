"""Records returned by hub list queries."""

import re

from pydantic import BaseModel, ConfigDict

from .core.exceptions import InvalidRecordIdError

# Largest integer a JSON number can carry without losing precision (2**53 - 1).
MAX_SAFE_INTEGER = 9007199254740991

ANALYSIS_URL_PATTERN = re.compile(r"/analysis/(\d+)\.json")


def parse_record_id(value: str | int) -> str:
    """Normalize a project or analysis id to its string form.

    Ids are kept as strings since they may exceed the precision of a
    JSON number. A numeric id outside the safe integer range is rejected.

    Raises:
        InvalidRecordIdError: if the id is empty, not a string or int, or
            a number that may have lost precision
    """
    if isinstance(value, bool):
        raise InvalidRecordIdError(f"Record id must be a string or integer, not {value!r}")
    if isinstance(value, int):
        if abs(value) > MAX_SAFE_INTEGER:
            raise InvalidRecordIdError(f"Record id {value} is too large to be represented exactly")
        return str(value)
    if isinstance(value, str):
        if not value:
            raise InvalidRecordIdError("Record id is empty")
        return value
    raise InvalidRecordIdError(f"Record id must be a string or integer, not {type(value).__name__}")


def parse_analysis_id_from_url(url: str | None) -> str | None:
    """Extract the id from an analysis URL such as `/analysis/42.json`."""
    if not url:
        return None
    match = ANALYSIS_URL_PATTERN.search(url)
    if match is None:
        return None
    return match.group(1)


class ProjectRecord(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    path: str


class AnalysisRecord(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    name: str
