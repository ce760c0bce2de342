from .errors import OriginRejected, PathRejected, ProxyError, UpstreamError
from .rewrite import PathRewriter, get_path_rewriter

__all__ = [
    "OriginRejected",
    "PathRejected",
    "PathRewriter",
    "ProxyError",
    "UpstreamError",
    "get_path_rewriter",
]
