import pytest
from pydantic import ValidationError

from sarifhub.address import HubAddress, format_user_credential_key, parse_hub_address
from sarifhub.core.exceptions import InvalidAddressError


class TestParseHubAddress:
    def test_bare_host_and_port(self):
        address = parse_hub_address("hub.example.com:7340")

        assert address.scheme is None
        assert address.hostname == "hub.example.com"
        assert address.port == 7340
        assert str(address) == "hub.example.com:7340"

    def test_bare_host_without_port(self):
        address = parse_hub_address("localhost")

        assert address.hostname == "localhost"
        assert address.port is None
        assert str(address) == "localhost"

    def test_full_url(self):
        address = parse_hub_address("HTTPS://Hub.Example.com:8443/")

        assert address.scheme == "https"
        assert address.hostname == "hub.example.com"
        assert address.port == 8443
        assert str(address) == "https://hub.example.com:8443"

    def test_url_without_port(self):
        address = parse_hub_address("http://hub.example.com")

        assert address.scheme == "http"
        assert address.port is None

    def test_ipv6_url(self):
        address = parse_hub_address("http://[::1]:7340")

        assert address.hostname == "::1"
        assert address.host_and_port == "[::1]:7340"

    def test_bare_ipv6_with_port(self):
        address = parse_hub_address("[::1]:7340")

        assert address.scheme is None
        assert address.hostname == "::1"
        assert address.port == 7340

    def test_bare_ipv6_without_port(self):
        address = parse_hub_address("[fe80::2]")

        assert address.hostname == "fe80::2"
        assert address.port is None

    def test_out_of_range_port_is_kept(self):
        # Fails later, when connecting.
        assert parse_hub_address("http://hub:99999").port == 99999

    @pytest.mark.parametrize(
        "text",
        ["", ":7340", "hub:abc", "hub:", "http://:80", "https://hub:xyz", "[::1", "[::1]7340", "[]:80", "[::1]:"],
    )
    def test_invalid_addresses(self, text):
        with pytest.raises(InvalidAddressError):
            parse_hub_address(text)

    @pytest.mark.parametrize(
        "text",
        ["hub:7340", "hub", "http://hub:7340", "https://hub.example.com", "10.0.0.5:80", "[::1]:7340", "[::1]"],
    )
    def test_canonical_round_trip(self, text):
        address = parse_hub_address(text)
        assert parse_hub_address(str(address)) == address

    def test_address_is_immutable(self):
        address = parse_hub_address("hub:7340")
        with pytest.raises(ValidationError):
            address.port = 80


class TestFormatUserCredentialKey:
    def test_from_string(self):
        assert format_user_credential_key("https://Hub:7340/", "alice") == "alice@https://hub:7340"

    def test_from_address(self):
        address = HubAddress(hostname="hub", port=7340)
        assert format_user_credential_key(address, "bob") == "bob@hub:7340"
