#!/usr/bin/env python

"""Relaying of registry requests and responses."""

import logging
import os

from http import HTTPStatus

import canonicaljson

from aiohttp import hdrs, web
from multidict import CIMultiDict
from yarl import URL

from .authchallenge import format_challenge
from .httpclient import HttpClient
from .router import Router
from .specs import CHALLENGE_SERVICE, Headers, MediaTypes
from .typing import (
    ProxyRequest,
    ProxyResponse,
    ProxyResult,
    ProxyResultChallenge,
    ProxyResultDirect,
    ProxyResultForward,
    ProxyResultRedirect,
)
from .utils import copy_headers, release

LOGGER = logging.getLogger(__name__)


class ResponseForwarder:
    """
    Forwards requests that need no special handling to the upstream registry.
    """

    DEBUG = os.environ.get("DRPA_DEBUG", "")

    def __init__(self, *, http_client: HttpClient):
        """
        Args:
            http_client: Transport used to reach the upstream registry.
        """
        self.http_client = http_client

    async def _follow_blob_redirect(
        self, response: ProxyResponse, *, url: URL
    ) -> ProxyResult:
        """
        Retrieves the target of a blob redirect, without the client credentials.

        Args:
            response: The redirect response.
            url: The URL that was redirected.

        Returns:
            The result to be relayed to the client.
        """
        location = url.join(URL(response.headers[hdrs.LOCATION]))
        release(response)
        if ResponseForwarder.DEBUG:
            LOGGER.debug("Following blob redirect: %s", location)
        redirected = await self.http_client.fetch(
            ProxyRequest(
                body=None, headers=CIMultiDict(), method=hdrs.METH_GET, url=location
            ),
            allow_redirects=True,
        )
        return ProxyResultForward(response=redirected)

    async def forward(
        self, request: ProxyRequest, *, realm: str, upstream: str
    ) -> ProxyResult:
        """
        Forwards a request to the upstream registry.

        Args:
            request: The inbound request.
            realm: Token endpoint to advertise if the client must authenticate.
            upstream: Base URL of the upstream registry.

        Returns:
            The result to be relayed to the client.
        """
        dockerhub = Router.is_dockerhub(upstream)
        url = URL(f"{upstream}{request.url.raw_path_qs}", encoded=True)
        # Docker Hub redirects blobs to a separate storage host; see below.
        response = await self.http_client.fetch(
            request._replace(url=url), allow_redirects=not dockerhub
        )

        if response.status == HTTPStatus.UNAUTHORIZED:
            # With credentials the upstream error is authoritative (insufficient scope, unknown
            # repository, ...); without them the client has yet to authenticate.
            if request.headers.get(hdrs.AUTHORIZATION):
                return ProxyResultForward(response=response)
            release(response)
            return ProxyResultChallenge(realm=realm)

        if (
            dockerhub
            and response.status == HTTPStatus.TEMPORARY_REDIRECT
            and hdrs.LOCATION in response.headers
        ):
            return await self._follow_blob_redirect(response, url=url)

        return ProxyResultForward(response=response)


def _get_challenge_response(result: ProxyResultChallenge) -> web.Response:
    headers = {
        hdrs.ACCESS_CONTROL_ALLOW_ORIGIN: "*",
        hdrs.CONTENT_TYPE: MediaTypes.APPLICATION_JSON,
        hdrs.WWW_AUTHENTICATE: format_challenge(
            realm=result.realm, service=CHALLENGE_SERVICE
        ),
    }
    return web.Response(
        body=canonicaljson.encode_canonical_json({"message": "UNAUTHORIZED"}),
        headers=headers,
        status=HTTPStatus.UNAUTHORIZED,
    )


async def _write_response(
    response: ProxyResponse, *, cors: bool, request: web.Request
) -> web.StreamResponse:
    """
    Writes a response to the client, streaming the body when it has not been buffered.

    Args:
        response: The response to be written.
        cors: If True, "Access-Control-Allow-Origin: *" is added.
        request: The inbound request.

    Returns:
        The client response.
    """
    if isinstance(response.body, bytes):
        headers = copy_headers(
            response.headers, exclude=Headers.RESPONSE_BUFFERED_EXCLUDED
        )
        if cors:
            headers[hdrs.ACCESS_CONTROL_ALLOW_ORIGIN] = "*"
        return web.Response(
            body=response.body,
            headers=headers,
            reason=response.reason,
            status=response.status,
        )

    try:
        headers = copy_headers(response.headers)
        if cors:
            headers[hdrs.ACCESS_CONTROL_ALLOW_ORIGIN] = "*"
        stream_response = web.StreamResponse(
            headers=headers, reason=response.reason, status=response.status
        )
        await stream_response.prepare(request)
        async for chunk in response.body.iter_any():
            await stream_response.write(chunk)
        await stream_response.write_eof()
        return stream_response
    finally:
        release(response)


async def write_result(
    result: ProxyResult, *, request: web.Request
) -> web.StreamResponse:
    """
    Writes the result of a dispatched request to the client.

    Args:
        result: The dispatch result.
        request: The inbound request.

    Returns:
        The client response.
    """
    if isinstance(result, ProxyResultChallenge):
        return _get_challenge_response(result)
    if isinstance(result, ProxyResultRedirect):
        return web.Response(
            headers={
                hdrs.ACCESS_CONTROL_ALLOW_ORIGIN: "*",
                hdrs.LOCATION: result.location,
            },
            status=result.status,
        )
    if isinstance(result, ProxyResultDirect):
        return await _write_response(result.response, cors=False, request=request)
    if isinstance(result, ProxyResultForward):
        return await _write_response(result.response, cors=True, request=request)
    raise TypeError(f"Unsupported result: {result}")
