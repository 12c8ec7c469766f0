#!/usr/bin/env python

"""Registry bearer token acquisition on behalf of clients."""

import hashlib
import logging
import os

from http import HTTPStatus
from typing import Optional

from aiohttp import hdrs
from multidict import CIMultiDict
from yarl import URL

from .authchallenge import parse_challenge
from .httpclient import HttpClient
from .router import Router
from .specs import DEFAULT_NAMESPACE, Headers, Paths, TOKEN_CACHE_MAX_AGE
from .tokencache import TokenCache
from .typing import (
    AuthChallenge,
    CachedToken,
    ProxyRequest,
    ProxyResponse,
    ProxyResult,
    ProxyResultDirect,
    ProxyResultForward,
)
from .utils import copy_headers, read_body, release

LOGGER = logging.getLogger(__name__)


class TokenBroker:
    """
    Performs the registry token handshake and caches the issued tokens.

    https://github.com/distribution/distribution/blob/main/docs/spec/auth/token.md
    """

    DEBUG = os.environ.get("DRPA_DEBUG", "")

    def __init__(self, *, http_client: HttpClient, token_cache: TokenCache):
        """
        Args:
            http_client: Transport used to reach the upstream registry and auth server.
            token_cache: Cache of issued token responses.
        """
        self.http_client = http_client
        self.token_cache = token_cache

    @staticmethod
    def get_cache_key(
        *, authorization: Optional[str], hostname: str, scope: Optional[str]
    ) -> str:
        """
        Derives the cache key of a token request.

        Credentials are only ever represented by a digest prefix.

        Args:
            authorization: The "Authorization" header provided by the client, if any.
            hostname: The inbound hostname.
            scope: The (normalized) requested scope.

        Returns:
            The cache key.
        """
        key = f"token:{hostname}:{scope or 'default'}"
        if authorization:
            digest = hashlib.sha256(authorization.encode("utf-8")).hexdigest()
            return f"{key}:{digest[:16]}"
        return f"{key}:anonymous"

    @staticmethod
    def normalize_scope(scope: Optional[str], *, dockerhub: bool) -> Optional[str]:
        """
        Qualifies single segment repository names in a scope for Docker Hub.

            repository:busybox:pull => repository:library/busybox:pull

        Args:
            scope: The scope requested by the client.
            dockerhub: True if the scope is to be presented to Docker Hub.

        Returns:
            The normalized scope.
        """
        if not scope or not dockerhub:
            return scope
        parts = scope.split(":")
        if len(parts) == 3 and "/" not in parts[1]:
            parts[1] = f"{DEFAULT_NAMESPACE}/{parts[1]}"
        return ":".join(parts)

    @staticmethod
    def _from_cached_token(cached_token: CachedToken) -> ProxyResponse:
        return ProxyResponse(
            body=cached_token.body,
            headers=CIMultiDict(cached_token.headers),
            reason=cached_token.reason,
            status=cached_token.status,
        )

    async def _fetch_token(
        self,
        *,
        authorization: Optional[str],
        challenge: AuthChallenge,
        scope: Optional[str],
    ) -> ProxyResponse:
        """
        Requests a token from the auth server named by a challenge.

        Args:
            authorization: The "Authorization" header to be forwarded, if any.
            challenge: The challenge issued by the upstream registry.
            scope: The requested scope.

        Returns:
            The auth server response.
        """
        query = {"service": challenge.service}
        if scope:
            query["scope"] = scope
        headers = CIMultiDict()
        if authorization:
            headers[hdrs.AUTHORIZATION] = authorization
        return await self.http_client.fetch(
            ProxyRequest(
                body=None,
                headers=headers,
                method=hdrs.METH_GET,
                url=URL(challenge.realm).update_query(query),
            )
        )

    async def get_token(self, request: ProxyRequest, *, upstream: str) -> ProxyResult:
        """
        Retrieves a token for the scope requested by a client, from cache when possible.

        Args:
            request: The inbound token request.
            upstream: Base URL of the upstream registry.

        Returns:
            The result to be relayed to the client.
        """
        probe = await self.http_client.fetch(
            ProxyRequest(
                body=None,
                headers=CIMultiDict(),
                method=hdrs.METH_GET,
                url=URL(f"{upstream}{Paths.V2}"),
            )
        )
        header = probe.headers.get(hdrs.WWW_AUTHENTICATE)
        if probe.status != HTTPStatus.UNAUTHORIZED or header is None:
            return ProxyResultDirect(response=probe)
        release(probe)
        challenge = parse_challenge(header)

        scope = TokenBroker.normalize_scope(
            request.url.query.get("scope"), dockerhub=Router.is_dockerhub(upstream)
        )
        authorization = request.headers.get(hdrs.AUTHORIZATION)
        key = TokenBroker.get_cache_key(
            authorization=authorization, hostname=request.url.host, scope=scope
        )

        cached_token = await self.token_cache.get(key)
        if cached_token:
            if TokenBroker.DEBUG:
                LOGGER.debug("Token cache hit: %s", key)
            return ProxyResultDirect(
                response=TokenBroker._from_cached_token(cached_token)
            )

        response = await self._fetch_token(
            authorization=authorization, challenge=challenge, scope=scope
        )
        if response.status != HTTPStatus.OK:
            LOGGER.info(
                "Token request to %s failed: %s %s",
                challenge.realm,
                response.status,
                response.reason,
            )
            return ProxyResultForward(response=response)

        body = await read_body(response)
        headers = copy_headers(
            response.headers, exclude=Headers.RESPONSE_BUFFERED_EXCLUDED
        )
        headers[hdrs.ACCESS_CONTROL_ALLOW_ORIGIN] = "*"
        headers[hdrs.CACHE_CONTROL] = Headers.CACHE_CONTROL_TOKEN
        cached_token = CachedToken(
            body=body,
            headers=tuple(headers.items()),
            reason=response.reason,
            status=response.status,
        )
        await self.token_cache.put(key, cached_token, ttl=TOKEN_CACHE_MAX_AGE)
        if TokenBroker.DEBUG:
            LOGGER.debug("Token cached: %s", key)
        return ProxyResultDirect(response=TokenBroker._from_cached_token(cached_token))
