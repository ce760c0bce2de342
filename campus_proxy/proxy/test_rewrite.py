import pytest

from campus_proxy.proxy.errors import PathRejected
from campus_proxy.proxy.rewrite import PathRewriter

UPSTREAM = "https://erp.example.edu:8072"


@pytest.fixture
def rewriter():
    return PathRewriter(
        upstream_origin=UPSTREAM,
        public_prefix="/api/campus",
        upstream_mount="/ISIM",
    )


class TestTargetUrl:
    def test_public_prefix_is_rewritten(self, rewriter):
        assert rewriter.target_url("/api/campus/Login", "x=1") == f"{UPSTREAM}/ISIM/Login?x=1"

    def test_upstream_form_passes_through(self, rewriter):
        assert rewriter.target_url("/ISIM/Login", "") == f"{UPSTREAM}/ISIM/Login"

    def test_bare_prefix(self, rewriter):
        assert rewriter.target_url("/api/campus", "") == f"{UPSTREAM}/ISIM"

    def test_query_is_kept_verbatim(self, rewriter):
        url = rewriter.target_url("/api/campus/Search", "q=a%20b&tag=c%2Fd&empty=")
        assert url == f"{UPSTREAM}/ISIM/Search?q=a%20b&tag=c%2Fd&empty="

    def test_nested_path(self, rewriter):
        url = rewriter.target_url("/api/campus/Student/Attendance/2024", "")
        assert url == f"{UPSTREAM}/ISIM/Student/Attendance/2024"

    @pytest.mark.parametrize(
        "path", ["/", "/api", "/api/campusX/Login", "/ISIMX/Login", "/other/ISIM/Login"]
    )
    def test_paths_outside_both_prefixes_are_rejected(self, rewriter, path):
        with pytest.raises(PathRejected) as exc_info:
            rewriter.target_url(path, "")
        assert exc_info.value.path == path


class TestRewriteLocation:
    def test_absolute_upstream_url(self, rewriter):
        assert rewriter.rewrite_location(f"{UPSTREAM}/ISIM/Foo") == "/api/campus/Foo"

    def test_absolute_upstream_url_keeps_query_and_fragment(self, rewriter):
        location = f"{UPSTREAM}/ISIM/Home.aspx?tab=2#top"
        assert rewriter.rewrite_location(location) == "/api/campus/Home.aspx?tab=2#top"

    def test_host_comparison_ignores_case(self, rewriter):
        location = "https://ERP.Example.edu:8072/ISIM/Foo"
        assert rewriter.rewrite_location(location) == "/api/campus/Foo"

    def test_root_relative_path_under_mount(self, rewriter):
        assert rewriter.rewrite_location("/ISIM/Default.aspx") == "/api/campus/Default.aspx"

    def test_root_relative_path_outside_mount_unchanged(self, rewriter):
        assert rewriter.rewrite_location("/elsewhere/Foo") == "/elsewhere/Foo"

    def test_document_relative_path_unchanged(self, rewriter):
        assert rewriter.rewrite_location("Login.aspx") == "Login.aspx"

    def test_other_host_unchanged(self, rewriter):
        location = "https://sso.example.com/ISIM/Foo"
        assert rewriter.rewrite_location(location) == location

    def test_same_host_other_port_unchanged(self, rewriter):
        location = "https://erp.example.edu/ISIM/Foo"
        assert rewriter.rewrite_location(location) == location

    def test_upstream_host_outside_mount_unchanged(self, rewriter):
        location = f"{UPSTREAM}/reports/Foo"
        assert rewriter.rewrite_location(location) == location

    def test_default_port_is_implied(self):
        rewriter = PathRewriter("https://erp.example.edu", "/api/campus", "/ISIM")
        assert rewriter.rewrite_location("https://erp.example.edu:443/ISIM/A") == "/api/campus/A"

    def test_invalid_port_unchanged(self, rewriter):
        location = "https://erp.example.edu:notaport/ISIM/Foo"
        assert rewriter.rewrite_location(location) == location

    def test_empty(self, rewriter):
        assert rewriter.rewrite_location("") == ""
        assert rewriter.rewrite_location(None) is None


class TestRewriteSetCookie:
    def test_path_under_mount_is_moved_to_public_prefix(self, rewriter):
        result = rewriter.rewrite_set_cookie("session=abc123; Path=/ISIM; HttpOnly")

        assert "session=abc123" in result
        assert "Path=/api/campus" in result
        assert "HttpOnly" in result

    def test_nested_path(self, rewriter):
        result = rewriter.rewrite_set_cookie("pref=1; Path=/ISIM/Student/")
        assert "Path=/api/campus/Student/" in result

    def test_upstream_domain_is_dropped(self, rewriter):
        result = rewriter.rewrite_set_cookie("sid=1; Domain=.erp.example.edu; Path=/")

        assert "sid=1" in result
        assert "Domain" not in result
        assert "Path=/" in result

    def test_root_path_cookie_untouched(self, rewriter):
        cookie = "ASP.NET_SessionId=xyz; path=/; HttpOnly; SameSite=Lax"
        assert rewriter.rewrite_set_cookie(cookie) == cookie

    def test_attributes_unknown_to_http_cookies_do_not_block_rewrite(self, rewriter):
        result = rewriter.rewrite_set_cookie("auth=abc; Path=/ISIM; Partitioned; Secure")

        assert result == "auth=abc; Path=/api/campus; Partitioned; Secure"

    def test_other_attributes_are_kept_verbatim(self, rewriter):
        cookie = "auth=a=b; Expires=Wed, 21 Oct 2026 07:28:00 GMT; path=/ISIM/; SameSite=None"

        result = rewriter.rewrite_set_cookie(cookie)

        assert result == (
            "auth=a=b; Expires=Wed, 21 Oct 2026 07:28:00 GMT; path=/api/campus/; SameSite=None"
        )

    def test_unparseable_cookie_untouched(self, rewriter):
        cookie = "\x00broken"
        assert rewriter.rewrite_set_cookie(cookie) == cookie


class TestConfigurationValidation:
    @pytest.mark.parametrize(
        "origin",
        ["erp.example.edu", "ftp://erp.example.edu", "https://", "https://erp.example.edu/ISIM"],
    )
    def test_rejects_bad_upstream_origin(self, origin):
        with pytest.raises(ValueError):
            PathRewriter(origin, "/api/campus", "/ISIM")

    @pytest.mark.parametrize("prefix", ["", "/", "api/campus"])
    def test_rejects_bad_prefix(self, prefix):
        with pytest.raises(ValueError):
            PathRewriter(UPSTREAM, prefix, "/ISIM")
        with pytest.raises(ValueError):
            PathRewriter(UPSTREAM, "/api/campus", prefix)
