"""Origin allow-list and CORS response header policy.

A single ``OriginPolicy`` is built from configuration at startup and shared by
the forwarding route and the preflight responder, so both always agree on who
is allowed and which headers are sent back.
"""

import logging
from dataclasses import dataclass
from functools import lru_cache
from typing import Dict, Optional, Tuple

from campus_proxy.vars import (
    ALLOW_CREDENTIALS,
    ALLOW_MISSING_ORIGIN,
    ALLOWED_ORIGINS,
    CORS_ALLOW_HEADERS,
    CORS_ALLOW_METHODS,
    CORS_EXPOSE_HEADERS,
    CORS_MAX_AGE,
)

logger = logging.getLogger("uvicorn.error")


@dataclass(frozen=True)
class OriginPolicy:
    allowed_origins: Tuple[str, ...]
    allow_missing_origin: bool = False
    allow_credentials: bool = True
    allow_methods: Tuple[str, ...] = ("GET", "POST", "PUT", "DELETE", "OPTIONS")
    allow_headers: Tuple[str, ...] = ("Content-Type", "Authorization", "Cookie")
    expose_headers: Tuple[str, ...] = ("Set-Cookie",)
    max_age: int = 86400

    def is_allowed(self, origin: Optional[str]) -> bool:
        """Exact-match membership test; a missing Origin follows ``allow_missing_origin``."""
        if not origin:
            return self.allow_missing_origin
        return origin in self.allowed_origins

    def allow_origin_value(self, origin: Optional[str]) -> Optional[str]:
        """
        Value for Access-Control-Allow-Origin.

        Credentialed CORS forbids the wildcard, so the caller's Origin is
        reflected; without credentials the wildcard is always used. Returns
        None when there is nothing to reflect.
        """
        if not self.allow_credentials:
            return "*"
        return origin or None

    def origin_headers(self, origin: Optional[str]) -> Dict[str, str]:
        """Minimal CORS set attached to every response an allowed caller receives."""
        value = self.allow_origin_value(origin)
        if value is None:
            return {}
        headers = {"Access-Control-Allow-Origin": value}
        if value != "*":
            headers["Vary"] = "Origin"
        if self.allow_credentials:
            headers["Access-Control-Allow-Credentials"] = "true"
        return headers

    def response_headers(self, origin: Optional[str]) -> Dict[str, str]:
        headers = self.origin_headers(origin)
        if headers and self.expose_headers:
            headers["Access-Control-Expose-Headers"] = ", ".join(self.expose_headers)
        return headers

    def preflight_headers(self, origin: Optional[str]) -> Dict[str, str]:
        headers = self.origin_headers(origin)
        headers["Access-Control-Allow-Methods"] = ", ".join(self.allow_methods)
        headers["Access-Control-Allow-Headers"] = ", ".join(self.allow_headers)
        headers["Access-Control-Max-Age"] = str(self.max_age)
        return headers


@lru_cache(maxsize=1)
def get_origin_policy() -> OriginPolicy:
    """Build the process-wide policy once from configuration."""
    policy = OriginPolicy(
        allowed_origins=ALLOWED_ORIGINS,
        allow_missing_origin=ALLOW_MISSING_ORIGIN,
        allow_credentials=ALLOW_CREDENTIALS,
        allow_methods=CORS_ALLOW_METHODS,
        allow_headers=CORS_ALLOW_HEADERS,
        expose_headers=CORS_EXPOSE_HEADERS,
        max_age=CORS_MAX_AGE,
    )
    logger.info(
        f"[CORS] Allowed origins: {', '.join(policy.allowed_origins) or '<none>'}; "
        f"missing origin {'allowed' if policy.allow_missing_origin else 'rejected'}; "
        f"credentials {'on' if policy.allow_credentials else 'off'}"
    )
    return policy
