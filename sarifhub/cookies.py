"""Per-connection HTTP cookie storage."""

import time
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from email.utils import parsedate_to_datetime

import httpx

_ATTRIB_SEP = ";"
_KV_SEP = "="


@dataclass(frozen=True)
class HTTPCookie:
    """A cookie parsed from a single Set-Cookie header value."""

    name: str
    value: str | None = None
    created: float = 0.0
    expires: float | None = None
    max_age: int | None = None
    domain: str | None = None
    path: str | None = None
    http_only: bool = False
    secure: bool = False
    same_site: str | None = None
    attributes: dict[str, str | None] = field(default_factory=dict)

    @classmethod
    def parse(cls, set_cookie: str, created: float | None = None) -> "HTTPCookie":
        if created is None:
            created = time.time()
        parts = set_cookie.split(_ATTRIB_SEP)
        name, sep, value = parts[0].strip().partition(_KV_SEP)
        kwargs: dict = {
            "name": name.strip(),
            "value": value.strip() if sep else None,
            "created": created,
        }
        attributes: dict[str, str | None] = {}
        for part in parts[1:]:
            attrib_name, sep, attrib_value = part.strip().partition(_KV_SEP)
            key = attrib_name.strip().lower()
            if not key:
                continue
            val = attrib_value.strip() if sep else None
            attributes[key] = val
            if key == "httponly":
                kwargs["http_only"] = True
            elif key == "secure":
                kwargs["secure"] = True
            elif key == "samesite":
                kwargs["same_site"] = val or ""
            elif key in ("max-age", "maxage") and val:
                try:
                    kwargs["max_age"] = int(val)
                except ValueError:
                    pass
            elif key == "expires" and val:
                try:
                    kwargs["expires"] = parsedate_to_datetime(val).timestamp()
                except (TypeError, ValueError):
                    pass
            elif key == "domain" and val:
                kwargs["domain"] = val.lstrip(".").lower()
            elif key == "path" and val:
                kwargs["path"] = val
        kwargs["attributes"] = attributes
        return cls(**kwargs)

    @property
    def key(self) -> tuple[str, str, str]:
        return (self.name, self.domain or "", self.path or "")

    def is_expired(self, now: float) -> bool:
        # Max-Age takes precedence over Expires (RFC 6265 section 5.3).
        if self.max_age is not None:
            return self.created + self.max_age <= now
        if self.expires is not None:
            return self.expires <= now
        return False

    def matches(self, url: httpx.URL) -> bool:
        if self.domain:
            host = url.host.lower()
            if host != self.domain and not host.endswith("." + self.domain):
                return False
        if self.path:
            request_path = url.path or "/"
            if not request_path.startswith(self.path):
                return False
        if self.secure and url.scheme != "https":
            return False
        return True

    def __str__(self) -> str:
        if self.value is None:
            return self.name
        return f"{self.name}={self.value}"


class CookieJar:
    """Stores the latest cookie per (name, domain, path)."""

    def __init__(self, clock: Callable[[], float] = time.time) -> None:
        self._clock = clock
        self._cookies: dict[tuple[str, str, str], HTTPCookie] = {}

    def __len__(self) -> int:
        return len(self._cookies)

    def set_cookie(self, set_cookie: str) -> HTTPCookie:
        """Store a cookie from a Set-Cookie header value, replacing any older one."""
        cookie = HTTPCookie.parse(set_cookie, created=self._clock())
        self._cookies[cookie.key] = cookie
        return cookie

    def store_response_cookies(self, set_cookie_headers: Iterable[str]) -> None:
        for header in set_cookie_headers:
            self.set_cookie(header)

    def evict_expired(self) -> None:
        now = self._clock()
        expired = [key for key, cookie in self._cookies.items() if cookie.is_expired(now)]
        for key in expired:
            del self._cookies[key]

    def get_request_cookies(self, url: httpx.URL | str) -> list[str]:
        """Return `name=value` strings to send with a request to `url`."""
        self.evict_expired()
        target = httpx.URL(url)
        return [str(cookie) for cookie in self._cookies.values() if cookie.matches(target)]

    def get_cookie_header(self, url: httpx.URL | str) -> str | None:
        cookies = self.get_request_cookies(url)
        if not cookies:
            return None
        return "; ".join(cookies)

    def clear(self) -> None:
        self._cookies.clear()
