import httpx

from sarifhub.cookies import CookieJar, HTTPCookie

NOW = 1_700_000_000.0


class FakeClock:
    def __init__(self, now: float = NOW):
        self.now = now

    def __call__(self) -> float:
        return self.now


class TestHTTPCookie:
    def test_parse_attributes(self):
        cookie = HTTPCookie.parse(
            "sid=abc123; Path=/; Domain=.Example.com; HttpOnly; Secure; SameSite=Strict; Max-Age=60",
            created=NOW,
        )

        assert cookie.name == "sid"
        assert cookie.value == "abc123"
        assert cookie.path == "/"
        assert cookie.domain == "example.com"
        assert cookie.http_only
        assert cookie.secure
        assert cookie.same_site == "Strict"
        assert cookie.max_age == 60
        assert str(cookie) == "sid=abc123"

    def test_max_age_takes_precedence_over_expires(self):
        cookie = HTTPCookie.parse(
            "sid=1; Expires=Wed, 21 Oct 2015 07:28:00 GMT; Max-Age=60", created=NOW
        )

        assert not cookie.is_expired(NOW + 59)
        assert cookie.is_expired(NOW + 60)

    def test_expires(self):
        cookie = HTTPCookie.parse("sid=1; Expires=Wed, 21 Oct 2015 07:28:00 GMT", created=NOW)

        assert cookie.expires == 1445412480.0
        assert cookie.is_expired(NOW)

    def test_legacy_maxage_spelling(self):
        cookie = HTTPCookie.parse("sid=1; maxage=10", created=NOW)
        assert cookie.max_age == 10

    def test_session_cookie_never_expires(self):
        assert not HTTPCookie.parse("sid=1", created=NOW).is_expired(NOW + 10**9)

    def test_matches(self):
        cookie = HTTPCookie.parse("sid=1; Domain=example.com; Path=/app; Secure")

        assert cookie.matches(httpx.URL("https://hub.example.com/app/page"))
        assert not cookie.matches(httpx.URL("http://hub.example.com/app/page"))
        assert not cookie.matches(httpx.URL("https://hub.example.com/other"))
        assert not cookie.matches(httpx.URL("https://example.org/app"))


class TestCookieJar:
    def test_latest_cookie_wins(self):
        jar = CookieJar(clock=FakeClock())
        jar.set_cookie("sid=old; Path=/")
        jar.set_cookie("sid=new; Path=/")

        assert len(jar) == 1
        assert jar.get_request_cookies("http://hub/") == ["sid=new"]

    def test_same_name_different_path_is_separate(self):
        jar = CookieJar(clock=FakeClock())
        jar.set_cookie("sid=root; Path=/")
        jar.set_cookie("sid=app; Path=/app")

        assert len(jar) == 2
        assert sorted(jar.get_request_cookies("http://hub/app/x")) == ["sid=app", "sid=root"]
        assert jar.get_request_cookies("http://hub/other") == ["sid=root"]

    def test_same_name_different_domain_is_separate(self):
        jar = CookieJar(clock=FakeClock())
        jar.set_cookie("sid=a; Domain=a.example.com")
        jar.set_cookie("sid=b; Domain=b.example.com")

        assert len(jar) == 2
        assert jar.get_request_cookies("http://a.example.com/") == ["sid=a"]

    def test_expired_cookies_are_never_returned(self):
        clock = FakeClock()
        jar = CookieJar(clock=clock)
        jar.store_response_cookies([
            "short=1; Max-Age=10",
            "long=2; Max-Age=1000",
            "gone=3; Expires=Wed, 21 Oct 2015 07:28:00 GMT",
            "session=4",
        ])

        assert sorted(jar.get_request_cookies("http://hub/")) == ["long=2", "session=4", "short=1"]

        clock.now = NOW + 10
        assert sorted(jar.get_request_cookies("http://hub/")) == ["long=2", "session=4"]
        # Eviction removes them from storage too.
        assert len(jar) == 2

    def test_replacing_with_expired_cookie_deletes_it(self):
        jar = CookieJar(clock=FakeClock())
        jar.set_cookie("sid=1")
        jar.set_cookie("sid=; Max-Age=0")

        assert jar.get_request_cookies("http://hub/") == []

    def test_cookie_header(self):
        jar = CookieJar(clock=FakeClock())
        assert jar.get_cookie_header("http://hub/") is None

        jar.set_cookie("a=1")
        jar.set_cookie("b=2")
        assert jar.get_cookie_header("http://hub/") == "a=1; b=2"

    def test_clear(self):
        jar = CookieJar(clock=FakeClock())
        jar.set_cookie("a=1")
        jar.clear()

        assert len(jar) == 0
        assert jar.get_cookie_header("http://hub/") is None
