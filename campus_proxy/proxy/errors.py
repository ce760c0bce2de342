class ProxyError(Exception):
    """Base class for failures the proxy turns into HTTP responses."""

    status_code = 500


class OriginRejected(ProxyError):
    status_code = 403

    def __init__(self, origin):
        self.origin = origin
        super().__init__(f"Origin not allowed: {origin or '<missing>'}")


class PathRejected(ProxyError):
    status_code = 404

    def __init__(self, path: str):
        self.path = path
        super().__init__(f"Path outside proxied prefixes: {path}")


class UpstreamError(ProxyError):
    """Network, timeout, URL construction or body-read failure talking to upstream."""
