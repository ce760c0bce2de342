import logging
from typing import List, Optional, Tuple

import httpx
from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse, PlainTextResponse, Response
from opentelemetry import trace

from campus_proxy.cors.policy import OriginPolicy, get_origin_policy
from campus_proxy.proxy.errors import (
    OriginRejected,
    PathRejected,
    ProxyError,
    UpstreamError,
)
from campus_proxy.proxy.rewrite import PathRewriter, get_path_rewriter
from campus_proxy.utils.exception_logging import (
    format_exception_message,
    log_exception_with_details,
)
from campus_proxy.utils.traced_requests import traced_request
from campus_proxy.vars import PROXY_TIMEOUT, REWRITE_COOKIE_PATHS

router = APIRouter()
tracer = trace.get_tracer(__name__)
logger = logging.getLogger("uvicorn.error")

# Hop-by-hop headers that should NOT be forwarded (RFC 7230 6.1)
HOP_BY_HOP_HEADERS = {
    "connection",
    "keep-alive",
    "proxy-authenticate",
    "proxy-authorization",
    "te",
    "trailer",
    "trailers",
    "transfer-encoding",
    "upgrade",
}

# Headers describing the caller-to-proxy hop. accept-encoding is left to httpx
# so upstream only picks encodings httpx can decode.
CALLER_HOP_HEADERS = {
    "origin",
    "referer",
    "host",
    "content-length",
    "accept-encoding",
}

# The body handed back by httpx is already decoded, so upstream framing no longer applies
STALE_RESPONSE_HEADERS = {"content-length", "content-encoding"}

BODYLESS_METHODS = {"GET", "HEAD"}

PROXY_METHODS = ["GET", "POST", "PUT", "DELETE", "PATCH", "HEAD", "OPTIONS"]


def _connection_tokens(headers) -> set:
    """Extra hop-by-hop header names listed in the Connection header."""
    tokens = set()
    for name, value in headers.items():
        if name.lower() == "connection":
            tokens.update(t.strip().lower() for t in value.split(",") if t.strip())
    return tokens


def request_path(request: Request) -> str:
    """The still percent-encoded request path, so upstream sees what the caller sent."""
    raw_path = request.scope.get("raw_path")
    if raw_path:
        return raw_path.split(b"?", 1)[0].decode("latin-1")
    return request.url.path


def prepare_headers(request: Request) -> httpx.Headers:
    """
    Copy the inbound headers for the upstream request.

    Hop-by-hop headers and those describing the original caller (Origin,
    Referer, Host) are dropped; everything else, cookies and authorization
    included, is passed on unchanged.
    """
    skipped = HOP_BY_HOP_HEADERS | CALLER_HOP_HEADERS | _connection_tokens(request.headers)
    return httpx.Headers(
        [
            (name, value)
            for name, value in request.headers.items()
            if name.lower() not in skipped
        ]
    )


def build_response_headers(
    upstream: httpx.Response,
    rewriter: PathRewriter,
    policy: OriginPolicy,
    origin: Optional[str],
) -> List[Tuple[str, str]]:
    """
    Upstream headers in their original order, minus hop-by-hop, stale framing
    and upstream CORS headers, followed by this proxy's CORS set.
    """
    skipped = HOP_BY_HOP_HEADERS | STALE_RESPONSE_HEADERS | _connection_tokens(upstream.headers)
    headers = []
    for name, value in upstream.headers.multi_items():
        name_lower = name.lower()
        if name_lower in skipped or name_lower.startswith("access-control-"):
            continue

        if name_lower == "location":
            rewritten = rewriter.rewrite_location(value)
            if rewritten != value:
                logger.debug(f"[Proxy] Rewrote Location {value} -> {rewritten}")
            value = rewritten

        elif name_lower == "set-cookie" and REWRITE_COOKIE_PATHS:
            value = rewriter.rewrite_set_cookie(value)

        headers.append((name, value))

    headers.extend(policy.response_headers(origin).items())
    return headers


def assemble_response(
    method: str,
    upstream: httpx.Response,
    rewriter: PathRewriter,
    policy: OriginPolicy,
    origin: Optional[str],
) -> Response:
    """Status and buffered body unchanged, headers rebuilt as above."""
    response = Response(content=upstream.content, status_code=upstream.status_code)
    for name, value in build_response_headers(upstream, rewriter, policy, origin):
        response.headers.append(name, value)

    # A HEAD body is always empty, so the length upstream reported is the only true one
    upstream_length = upstream.headers.get("content-length")
    if (
        method.upper() == "HEAD"
        and upstream_length is not None
        and "content-encoding" not in upstream.headers
    ):
        response.headers["content-length"] = upstream_length
    return response


async def send_upstream(request: Request, target_url: str) -> httpx.Response:
    """Issue the rewritten request and buffer the complete upstream response."""
    content = None
    if request.method.upper() not in BODYLESS_METHODS:
        content = await request.body()

    try:
        async with httpx.AsyncClient(
            timeout=httpx.Timeout(PROXY_TIMEOUT),
            follow_redirects=False,  # Redirects go back to the browser with a rewritten Location
        ) as client:
            return await client.request(
                method=request.method,
                url=target_url,
                headers=prepare_headers(request),
                content=content,
            )
    except httpx.TimeoutException as e:
        raise UpstreamError(
            f"Upstream timed out after {PROXY_TIMEOUT:g}s: {format_exception_message(e)}",
        ) from e
    except httpx.HTTPError as e:
        raise UpstreamError(format_exception_message(e)) from e


def handle_preflight(request: Request, policy: OriginPolicy) -> Response:
    """Answer a CORS preflight without contacting upstream."""
    origin = request.headers.get("origin")
    with traced_request(
        tracer,
        operation="cors_preflight",
        method=request.method,
        origin=origin,
        start_message=f"[CORS] Preflight for {request.url.path} from {origin}",
        extra_attrs={"proxy.path": request.url.path},
    ) as span:
        if not policy.is_allowed(origin):
            logger.warning(f"[CORS] Rejected preflight from origin {origin}")
            span.set_attribute("proxy.error", "origin_rejected")
            # A failed preflight must not carry any CORS headers
            return PlainTextResponse("Forbidden", status_code=403)

        span.set_attribute("proxy.status_code", 204)
        return Response(status_code=204, headers=policy.preflight_headers(origin))


def error_response(
    exception: Exception, policy: OriginPolicy, origin: Optional[str]
) -> JSONResponse:
    return JSONResponse(
        {"error": "Proxy error", "message": format_exception_message(exception)},
        status_code=exception.status_code if isinstance(exception, ProxyError) else 500,
        headers=policy.origin_headers(origin),
    )


async def forward_to_upstream(
    request: Request, policy: OriginPolicy, rewriter: PathRewriter
) -> Response:
    """
    Forward an allowed request to upstream and return its response with CORS headers.

    Origin is checked before any upstream I/O, then the path is rewritten
    onto the upstream mount point. Redirect targets and cookie paths in the
    upstream response are mapped back to the public prefix.
    """
    # Captured first so every failure below can still answer with CORS headers
    origin = request.headers.get("origin")
    target_url = None

    with traced_request(
        tracer,
        operation="proxy_request",
        method=request.method,
        origin=origin,
        start_message=f"[Proxy] {request.method} {request.url.path} from {origin}",
        extra_attrs={"proxy.path": request.url.path},
    ) as span:
        try:
            if not policy.is_allowed(origin):
                raise OriginRejected(origin)

            target_url = rewriter.target_url(request_path(request), request.url.query)
            span.set_attribute("proxy.target_url", target_url)
            logger.debug(f"Proxying {request.method} {request.url.path} -> {target_url}")

            upstream = await send_upstream(request, target_url)
            span.set_attribute("proxy.status_code", upstream.status_code)

            return assemble_response(request.method, upstream, rewriter, policy, origin)

        except OriginRejected as e:
            logger.warning(f"[Proxy] {e}")
            span.set_attribute("proxy.error", "origin_rejected")
            return PlainTextResponse("Forbidden - Origin not allowed", status_code=e.status_code)

        except PathRejected as e:
            logger.warning(f"[Proxy] {e}")
            span.set_attribute("proxy.error", "path_rejected")
            return PlainTextResponse(
                "Not Found", status_code=e.status_code, headers=policy.origin_headers(origin)
            )

        except Exception as e:
            log_exception_with_details(
                logger, f"[Proxy] {request.method} {target_url or request.url.path}", e
            )
            span.set_attribute("proxy.error", type(e).__name__)
            return error_response(e, policy, origin)


@router.api_route("/{path:path}", methods=PROXY_METHODS)
async def proxy_all(
    request: Request,
    path: str,
    policy: OriginPolicy = Depends(get_origin_policy),
    rewriter: PathRewriter = Depends(get_path_rewriter),
):
    """Catch-all route: preflights are answered locally, everything else is forwarded."""
    if request.method == "OPTIONS":
        return handle_preflight(request, policy)
    return await forward_to_upstream(request, policy, rewriter)
