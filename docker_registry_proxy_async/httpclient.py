#!/usr/bin/env python

"""Asynchronous upstream HTTP transport."""

import logging
import os

from ssl import create_default_context, SSLContext
from typing import Dict, Optional, Union

from aiohttp import (
    AsyncResolver,
    ClientSession,
    Fingerprint,
    TCPConnector,
)
from aiohttp.helpers import BasicAuth

from .specs import Headers
from .typing import ProxyRequest, ProxyResponse
from .utils import copy_headers

LOGGER = logging.getLogger(__name__)


class HttpClient:
    # pylint: disable=too-many-instance-attributes
    """
    AIOHTTP based transport used to reach the upstream registries.
    """

    DEBUG = os.environ.get("DRPA_DEBUG", "")

    def __init__(
        self,
        *,
        client_session: ClientSession = None,
        client_session_kwargs: Dict = None,
        no_proxy: str = None,
        proxies: Dict[str, str] = None,
        proxy_auth: BasicAuth = None,
        resolver_kwargs: Dict = None,
        ssl: Union[None, bool, Fingerprint, SSLContext] = None,
        tcp_connector_kwargs: Dict = None,
    ):
        # pylint: disable=too-many-arguments
        """
        Args:
            client_session: The underlying client session to use when making connections.
            client_session_kwargs: Arguments to be passed to the client session.
            no_proxy: A comma separated list of hostnames to exclude from proxying.
            proxies: Mapping of protocols to proxy urls, optionally including credentials.
            proxy_auth: The credentials to use when proxying.
            resolver_kwargs: Arguments to be passed to the resolver
            ssl: SSL context.
            tcp_connector_kwargs: Arguments to be passed to the TCP connector.
        """
        if not client_session_kwargs:
            client_session_kwargs = {}
        if not proxies:
            proxies = {}
        http_proxy = os.environ.get("HTTP_PROXY", os.environ.get("http_proxy"))
        if http_proxy and "http" not in proxies:
            proxies["http"] = http_proxy
        https_proxy = os.environ.get("HTTPS_PROXY", os.environ.get("https_proxy"))
        if https_proxy and "https" not in proxies:
            proxies["https"] = https_proxy
        if not no_proxy:
            no_proxy = os.environ.get("NO_PROXY", os.environ.get("no_proxy"))
        no_proxy = no_proxy.split(",") if no_proxy else []
        if not resolver_kwargs:
            resolver_kwargs = {}
        if ssl is None:
            cacerts = os.environ.get("DRPA_CACERTS", None)
            if cacerts:
                if HttpClient.DEBUG:
                    LOGGER.debug("Using cacerts: %s", cacerts)
                ssl = create_default_context(cafile=str(cacerts))
            else:
                ssl = True
        if not tcp_connector_kwargs:
            tcp_connector_kwargs = {}

        self.client_session = client_session
        self.client_session_kwargs = client_session_kwargs
        self.proxies = proxies
        self.proxy_auth = proxy_auth
        self.proxy_no = no_proxy
        self.resolver_kwargs = resolver_kwargs
        self.ssl = ssl
        self.tcp_connector_kwargs = tcp_connector_kwargs

    async def __aenter__(self) -> "HttpClient":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    async def close(self):
        """Gracefully closes this instance."""
        if self.client_session:
            await self.client_session.close()
        self.client_session = None

    async def fetch(
        self, request: ProxyRequest, *, allow_redirects: bool = True
    ) -> ProxyResponse:
        """
        Issues a single request upstream.

        The response body is not read; the caller owns the returned response and must consume or
        release it.

        Args:
            request: The request to be issued.
            allow_redirects: If True, redirects are followed.

        Returns:
            The upstream response.
        """
        client_session = await self._get_client_session()
        proxy = await self._get_proxy(
            endpoint=request.url.host, protocol=request.url.scheme
        )
        if HttpClient.DEBUG:
            LOGGER.debug(
                "%s %s (allow_redirects=%s)",
                request.method,
                request.url,
                allow_redirects,
            )
        client_response = await client_session.request(
            allow_redirects=allow_redirects,
            data=request.body,
            headers=copy_headers(request.headers, exclude=Headers.REQUEST_EXCLUDED),
            method=request.method,
            proxy=proxy,
            proxy_auth=self.proxy_auth,
            ssl=self.ssl,
            url=request.url,
        )
        return ProxyResponse(
            body=client_response.content,
            client_response=client_response,
            headers=client_response.headers,
            reason=client_response.reason,
            status=client_response.status,
        )

    async def _get_client_session(self) -> ClientSession:
        """
        Initializes and / or retrieves an AIOHTTP client session.

        Returns:
            The AIOHTTP client session.
        """
        if not self.client_session:
            if "resolver" not in self.tcp_connector_kwargs:
                self.tcp_connector_kwargs["resolver"] = AsyncResolver(
                    **self.resolver_kwargs
                )
            if "ssl" not in self.tcp_connector_kwargs:
                self.tcp_connector_kwargs["ssl"] = self.ssl
            if "connector" not in self.client_session_kwargs:
                self.client_session_kwargs["connector"] = TCPConnector(
                    **self.tcp_connector_kwargs
                )
            # Relay upstream bodies byte-for-byte, along with their Content-Encoding.
            self.client_session_kwargs.setdefault("auto_decompress", False)
            self.client_session = ClientSession(**self.client_session_kwargs)

        return self.client_session

    async def _get_proxy(self, *, endpoint: str, protocol: str) -> Optional[str]:
        """
        Retrieves the proxy configuration for a given endpoint.

        Args:
            endpoint: The endpoint for which to retrieve the proxy configuration.
            protocol: Protocol used to connect to the endpoint.
        """
        result = None
        if endpoint not in self.proxy_no and protocol in self.proxies:
            result = self.proxies[protocol]
        return result
