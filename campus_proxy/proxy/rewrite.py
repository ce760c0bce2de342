import logging
from dataclasses import dataclass
from functools import lru_cache
from typing import Optional
from urllib.parse import urlsplit, urlunsplit

from campus_proxy.proxy.errors import PathRejected
from campus_proxy.vars import PUBLIC_API_PREFIX, UPSTREAM_MOUNT_POINT, UPSTREAM_ORIGIN

logger = logging.getLogger("uvicorn.error")

DEFAULT_PORTS = {"http": 80, "https": 443}


def _is_under(path: str, prefix: str) -> bool:
    """True when ``path`` is ``prefix`` itself or a path below it (whole segments only)."""
    return path == prefix or path.startswith(prefix + "/")


@dataclass(frozen=True)
class PathRewriter:
    """
    Maps the public API prefix onto the upstream mount point and back.

    Paths already in upstream form are accepted unchanged so that redirects
    issued by upstream in its own path scheme can loop back through the proxy.
    """

    upstream_origin: str
    public_prefix: str
    upstream_mount: str

    def __post_init__(self):
        parsed = urlsplit(self.upstream_origin)
        if parsed.scheme not in DEFAULT_PORTS or not parsed.hostname:
            raise ValueError(
                f"Upstream origin must be an absolute http(s) URL, got {self.upstream_origin!r}"
            )
        if parsed.path not in ("", "/") or parsed.query or parsed.fragment:
            raise ValueError(
                f"Upstream origin must not carry a path or query, got {self.upstream_origin!r}"
            )
        for name, prefix in (
            ("public API prefix", self.public_prefix),
            ("upstream mount point", self.upstream_mount),
        ):
            if not prefix.startswith("/") or prefix == "/":
                raise ValueError(f"The {name} must be a non-root absolute path, got {prefix!r}")

    @property
    def upstream_hostname(self) -> str:
        return urlsplit(self.upstream_origin).hostname

    def upstream_path(self, path: str) -> str:
        if _is_under(path, self.public_prefix):
            return self.upstream_mount + path[len(self.public_prefix):]
        if _is_under(path, self.upstream_mount):
            return path
        raise PathRejected(path)

    def target_url(self, path: str, query: str = "") -> str:
        """Construct the upstream URL, keeping the raw query string byte for byte."""
        url = f"{self.upstream_origin.rstrip('/')}{self.upstream_path(path)}"
        if query:
            url = f"{url}?{query}"
        return url

    def _points_at_upstream(self, parsed) -> bool:
        upstream = urlsplit(self.upstream_origin)
        try:
            if (parsed.hostname or "").lower() != upstream.hostname.lower():
                return False
            scheme = parsed.scheme or upstream.scheme
            port = parsed.port or DEFAULT_PORTS.get(scheme)
            upstream_port = upstream.port or DEFAULT_PORTS[upstream.scheme]
        except ValueError:
            # Unparseable port in the Location value
            return False
        return port == upstream_port

    def rewrite_location(self, location: Optional[str]) -> Optional[str]:
        """
        Rewrite a redirect target issued by upstream into proxy-relative form.

        Absolute URLs on the upstream host and root-relative paths are rewritten
        when their path sits under the upstream mount point. Anything else,
        including external redirects, is returned unchanged.
        """
        if not location:
            return location
        parsed = urlsplit(location)
        if parsed.scheme or parsed.netloc:
            if not self._points_at_upstream(parsed):
                return location
        elif not location.startswith("/"):
            return location

        if not _is_under(parsed.path, self.upstream_mount):
            return location
        path = self.public_prefix + parsed.path[len(self.upstream_mount):]
        return urlunsplit(("", "", path, parsed.query, parsed.fragment))

    def rewrite_set_cookie(self, set_cookie: str) -> str:
        """
        Point cookies scoped to the upstream mount point at the public prefix.

        A Domain attribute naming the upstream host is dropped so the browser
        stores the cookie for the proxy host instead of rejecting it.
        """
        # Attributes are edited in place; anything else, including attributes
        # unknown to http.cookies such as Partitioned, is passed through as sent
        parts = set_cookie.split(";")
        kept = [parts[0]]
        changed = False
        for part in parts[1:]:
            name, sep, value = part.strip().partition("=")
            attribute = name.strip().lower()
            value = value.strip()
            if sep and attribute == "path" and _is_under(
                value.rstrip("/") or "/", self.upstream_mount
            ):
                part = f" {name.strip()}={self.public_prefix}{value[len(self.upstream_mount):]}"
                changed = True
            elif (
                sep
                and attribute == "domain"
                and value.lstrip(".").lower() == self.upstream_hostname.lower()
            ):
                changed = True
                continue
            kept.append(part)

        if not changed:
            return set_cookie
        return ";".join(kept)


@lru_cache(maxsize=1)
def get_path_rewriter() -> PathRewriter:
    rewriter = PathRewriter(
        upstream_origin=UPSTREAM_ORIGIN,
        public_prefix=PUBLIC_API_PREFIX,
        upstream_mount=UPSTREAM_MOUNT_POINT,
    )
    logger.info(
        f"[Proxy] Forwarding {rewriter.public_prefix}/* and {rewriter.upstream_mount}/* "
        f"to {rewriter.upstream_origin}{rewriter.upstream_mount}/*"
    )
    return rewriter
