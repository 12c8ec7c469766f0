#!/usr/bin/env python

"""Asynchronous Docker Registry Proxy."""

import asyncio
import logging

from http import HTTPStatus

from aiohttp import ClientError, web

from .authchallenge import ChallengeParseError
from .httpclient import HttpClient
from .proxyconfig import ProxyConfig
from .requestdispatcher import RequestDispatcher
from .responseforwarder import ResponseForwarder, write_result
from .router import Router
from .specs import ErrorCodes
from .staticdocs import StaticDocProvider
from .tokenbroker import TokenBroker
from .tokencache import MemoryTokenCache, TokenCache
from .typing import ProxyRequest, ProxyResultDirect
from .utils import error_response

LOGGER = logging.getLogger(__name__)


class DockerRegistryProxyAsync:
    """
    AIOHTTP based reverse proxy for Docker registries.
    """

    def __init__(
        self,
        config: ProxyConfig,
        *,
        http_client: HttpClient = None,
        static_doc_provider: StaticDocProvider = None,
        token_cache: TokenCache = None,
    ):
        """
        Args:
            config: The proxy configuration.
            http_client: Transport used to reach the upstream registries.
            static_doc_provider: Provider of the documentation page.
            token_cache: Cache of issued token responses.
        """
        if http_client is None:
            http_client = HttpClient()
        if static_doc_provider is None:
            static_doc_provider = StaticDocProvider()
        if token_cache is None:
            token_cache = MemoryTokenCache(max_size=config.token_cache_size)

        self.config = config
        self.http_client = http_client
        self.token_cache = token_cache
        self.request_dispatcher = RequestDispatcher(
            config=config,
            http_client=http_client,
            response_forwarder=ResponseForwarder(http_client=http_client),
            router=Router(config),
            static_doc_provider=static_doc_provider,
            token_broker=TokenBroker(http_client=http_client, token_cache=token_cache),
        )

    async def __aenter__(self) -> "DockerRegistryProxyAsync":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    async def _on_cleanup(self, app: web.Application):
        # pylint: disable=unused-argument
        await self.close()

    async def close(self):
        """Gracefully closes this instance."""
        await self.http_client.close()

    def get_application(self) -> web.Application:
        """
        Initializes an AIOHTTP application that serves every path through this proxy.

        Returns:
            The AIOHTTP application.
        """
        app = web.Application()
        app.router.add_route("*", "/{path:.*}", self.handle_request)
        app.on_cleanup.append(self._on_cleanup)
        return app

    async def handle_request(self, request: web.Request) -> web.StreamResponse:
        """
        Serves a single inbound request.

        Args:
            request: The inbound request.

        Returns:
            The client response.
        """
        proxy_request = ProxyRequest(
            body=request.content if request.body_exists else None,
            headers=request.headers,
            method=request.method,
            url=request.url,
        )
        try:
            result = await self.request_dispatcher.dispatch(proxy_request)
        except ChallengeParseError as exception:
            LOGGER.error("Unable to authenticate %s: %s", request.url, exception)
            result = ProxyResultDirect(
                response=error_response(
                    code=ErrorCodes.UNKNOWN,
                    detail=exception.header,
                    message="Upstream registry returned an invalid challenge",
                    status=HTTPStatus.INTERNAL_SERVER_ERROR,
                )
            )
        except (asyncio.TimeoutError, ClientError) as exception:
            LOGGER.warning("Unable to reach upstream for %s: %r", request.url, exception)
            result = ProxyResultDirect(
                response=error_response(
                    code=ErrorCodes.UNAVAILABLE,
                    detail=str(exception),
                    message="Upstream registry is unavailable",
                    status=HTTPStatus.BAD_GATEWAY,
                )
            )
        except Exception as exception:  # pylint: disable=broad-except
            LOGGER.exception("Unable to serve %s", request.url)
            result = ProxyResultDirect(
                response=error_response(
                    code=ErrorCodes.UNKNOWN,
                    detail=repr(exception),
                    message="Internal proxy error",
                    status=HTTPStatus.INTERNAL_SERVER_ERROR,
                )
            )
        return await write_result(result, request=request)
