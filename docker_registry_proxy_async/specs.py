#!/usr/bin/env python

# pylint: disable=too-few-public-methods

"""Reusable string literals."""

from aiohttp import hdrs

CHALLENGE_SERVICE = "cloudflare-docker-proxy"

# Docker Hub resolves single segment repository names in this namespace.
DEFAULT_NAMESPACE = "library"

# Shorter than the 300s lifetime of tokens issued by the upstream auth servers.
TOKEN_CACHE_MAX_AGE = 240


class ErrorCodes:
    """https://github.com/opencontainers/distribution-spec/blob/main/spec.md#error-codes"""

    UNAVAILABLE = "UNAVAILABLE"
    UNKNOWN = "UNKNOWN"
    UNSUPPORTED = "UNSUPPORTED"


class Headers:
    """HTTP headers manipulated by the proxy."""

    CACHE_CONTROL_TOKEN = f"public, max-age={TOKEN_CACHE_MAX_AGE}"

    # https://www.rfc-editor.org/rfc/rfc9110#section-7.6.1
    HOP_BY_HOP = frozenset(
        x.lower()
        for x in [
            hdrs.CONNECTION,
            "Keep-Alive",
            hdrs.PROXY_AUTHENTICATE,
            hdrs.PROXY_AUTHORIZATION,
            hdrs.TE,
            "Trailer",
            hdrs.TRANSFER_ENCODING,
            hdrs.UPGRADE,
        ]
    )

    # Recomputed by the transport for each upstream request.
    REQUEST_EXCLUDED = (hdrs.HOST,)

    # Recomputed when a buffered body is written.
    RESPONSE_BUFFERED_EXCLUDED = (hdrs.CONTENT_LENGTH,)


class MediaTypes:
    """Generic mime types."""

    APPLICATION_JSON = "application/json"
    TEXT_HTML = "text/html"


class Modes:
    """Operating modes."""

    DEBUG = "debug"
    PRODUCTION = "production"


class Paths:
    """Request paths with special handling."""

    AUTH = "/v2/auth"
    CATALOG = "/v2/_catalog"
    ROOT = "/"
    V2 = "/v2/"


class Upstreams:
    """Upstream registry base URLs."""

    CLOUDSMITH = "https://docker.cloudsmith.io"
    DOCKERHUB = "https://registry-1.docker.io"
    ECR = "https://public.ecr.aws"
    GCR = "https://gcr.io"
    GHCR = "https://ghcr.io"
    K8S = "https://registry.k8s.io"
    K8S_GCR = "https://k8s.gcr.io"
    QUAY = "https://quay.io"


# Hostname prefix -> upstream; the hostname is <prefix>.<custom domain>.
ROUTE_PREFIXES = (
    # production
    ("docker", Upstreams.DOCKERHUB),
    ("quay", Upstreams.QUAY),
    ("gcr", Upstreams.GCR),
    ("k8s-gcr", Upstreams.K8S_GCR),
    ("k8s", Upstreams.K8S),
    ("ghcr", Upstreams.GHCR),
    ("cloudsmith", Upstreams.CLOUDSMITH),
    ("ecr", Upstreams.ECR),
    # staging
    ("docker-staging", Upstreams.DOCKERHUB),
)
