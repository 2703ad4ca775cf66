"""Shared fixtures for hub client tests."""

import re

import pytest

CHECK_VERSION_URL = re.compile(r"https?://hub\.example\.com:7340/command/check_version/.*")

MODERN_HUB_INFO = {
    "hubVersion": "7.1.0",
    "hubVersionNumber": 710,
    "hubProtocol": 1,
    "clientOK": True,
    "capabilities": {"openapi": True},
}

LEGACY_HUB_INFO = {
    "hubVersion": "7.0.2",
    "hubVersionNumber": 700,
    "hubProtocol": 1,
    "clientOK": True,
}


@pytest.fixture
def hub_version(httpx_mock):
    """Register the hub's answer to the version check.

    `kind` is "modern", "legacy", "absent" (a hub that predates the
    version check and answers 404), or a raw payload dict.
    """

    def register(kind: str | dict) -> None:
        if kind == "absent":
            httpx_mock.add_response(url=CHECK_VERSION_URL, status_code=404, text="Not Found")
        else:
            if isinstance(kind, dict):
                payload = kind
            else:
                payload = {"modern": MODERN_HUB_INFO, "legacy": LEGACY_HUB_INFO}[kind]
            httpx_mock.add_response(url=CHECK_VERSION_URL, json=payload)

    return register