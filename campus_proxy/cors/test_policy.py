import pytest

from campus_proxy.cors.policy import OriginPolicy, get_origin_policy

ALLOWED = ("https://app.example.edu", "http://localhost:5173")


@pytest.fixture
def policy():
    return OriginPolicy(allowed_origins=ALLOWED)


class TestIsAllowed:
    def test_listed_origin(self, policy):
        assert policy.is_allowed("https://app.example.edu")

    def test_unlisted_origin(self, policy):
        assert not policy.is_allowed("https://evil.example.com")

    def test_match_is_exact(self, policy):
        assert not policy.is_allowed("https://app.example.edu/")
        assert not policy.is_allowed("HTTPS://APP.EXAMPLE.EDU")
        assert not policy.is_allowed("http://localhost:5174")

    def test_missing_origin_rejected_by_default(self, policy):
        assert not policy.is_allowed(None)
        assert not policy.is_allowed("")

    def test_missing_origin_allowed_when_configured(self):
        permissive = OriginPolicy(allowed_origins=ALLOWED, allow_missing_origin=True)
        assert permissive.is_allowed(None)
        # Still rejects unlisted origins
        assert not permissive.is_allowed("https://evil.example.com")


class TestCredentialedHeaders:
    def test_origin_is_reflected_never_wildcard(self, policy):
        headers = policy.origin_headers("https://app.example.edu")

        assert headers["Access-Control-Allow-Origin"] == "https://app.example.edu"
        assert headers["Access-Control-Allow-Credentials"] == "true"
        assert headers["Vary"] == "Origin"

    def test_no_origin_means_no_cors_headers(self, policy):
        assert policy.origin_headers(None) == {}
        assert policy.response_headers(None) == {}

    def test_response_headers_expose_set_cookie(self, policy):
        headers = policy.response_headers("https://app.example.edu")

        assert "Set-Cookie" in headers["Access-Control-Expose-Headers"]

    def test_preflight_headers(self, policy):
        headers = policy.preflight_headers("http://localhost:5173")

        assert headers["Access-Control-Allow-Origin"] == "http://localhost:5173"
        assert headers["Access-Control-Allow-Methods"] == "GET, POST, PUT, DELETE, OPTIONS"
        assert headers["Access-Control-Allow-Headers"] == "Content-Type, Authorization, Cookie"
        assert headers["Access-Control-Allow-Credentials"] == "true"
        assert headers["Access-Control-Max-Age"] == "86400"


class TestWildcardHeaders:
    @pytest.fixture
    def wildcard(self):
        return OriginPolicy(allowed_origins=ALLOWED, allow_credentials=False)

    def test_wildcard_without_credentials(self, wildcard):
        headers = wildcard.origin_headers("https://app.example.edu")

        assert headers == {"Access-Control-Allow-Origin": "*"}

    def test_wildcard_applies_even_without_origin(self, wildcard):
        assert wildcard.preflight_headers(None)["Access-Control-Allow-Origin"] == "*"
        assert "Access-Control-Allow-Credentials" not in wildcard.preflight_headers(None)


def test_policy_is_built_once():
    assert get_origin_policy() is get_origin_policy()


def test_policy_is_immutable(policy):
    with pytest.raises(AttributeError):
        policy.allowed_origins = ("https://evil.example.com",)
