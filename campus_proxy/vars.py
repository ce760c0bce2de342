import os

SERVICE_NAME = os.getenv("SERVICE_NAME", "campus-cors-proxy")
HOST = os.environ.get("HOSTNAME", "0.0.0.0")
PORT = int(os.environ.get("PORT", "8787"))


def _parse_bool(raw: str) -> bool:
    return raw.strip().lower() in ("1", "true", "yes", "on")


def _parse_list(raw: str) -> tuple:
    """Split a comma separated env value, dropping blanks but keeping order."""
    items = []
    if not raw:
        return tuple(items)
    for entry in raw.split(","):
        entry = entry.strip()
        if entry and entry not in items:
            items.append(entry)
    return tuple(items)


# Upstream the proxy forwards to, and the two path prefixes mapped onto each other
UPSTREAM_ORIGIN = os.getenv(
    "UPSTREAM_ORIGIN", "https://glbg.servergi.com:8072"
).rstrip("/")
PUBLIC_API_PREFIX = os.getenv("PUBLIC_API_PREFIX", "/api/glbajaj").rstrip("/")
UPSTREAM_MOUNT_POINT = os.getenv("UPSTREAM_MOUNT_POINT", "/ISIMGLB").rstrip("/")

ALLOWED_ORIGINS = _parse_list(
    os.getenv(
        "ALLOWED_ORIGINS",
        "https://yashmalik.tech,"
        "https://codeblech.github.io,"
        "http://localhost:5173,"  # local development
        "http://localhost:4173",  # vite preview
    )
)
# Requests without an Origin header (curl, server-side callers) are rejected unless enabled
ALLOW_MISSING_ORIGIN = _parse_bool(os.getenv("ALLOW_MISSING_ORIGIN", "false"))
# Credentialed CORS reflects the caller's Origin; disabling it switches to "*"
ALLOW_CREDENTIALS = _parse_bool(os.getenv("ALLOW_CREDENTIALS", "true"))

CORS_ALLOW_METHODS = _parse_list(
    os.getenv("CORS_ALLOW_METHODS", "GET, POST, PUT, DELETE, OPTIONS")
)
CORS_ALLOW_HEADERS = _parse_list(
    os.getenv("CORS_ALLOW_HEADERS", "Content-Type, Authorization, Cookie")
)
CORS_EXPOSE_HEADERS = _parse_list(
    os.getenv("CORS_EXPOSE_HEADERS", "Set-Cookie, Location, Content-Disposition")
)
CORS_MAX_AGE = int(os.getenv("CORS_MAX_AGE", "86400"))

PROXY_TIMEOUT = float(os.getenv("PROXY_TIMEOUT", "60"))
REWRITE_COOKIE_PATHS = _parse_bool(os.getenv("REWRITE_COOKIE_PATHS", "true"))

METRICS_ENABLED = _parse_bool(os.getenv("METRICS_ENABLED", "true"))
OTLP_ENDPOINT = os.getenv("OTLP_ENDPOINT")
OTLP_HEADERS = os.getenv("OTLP_HEADERS", "")
