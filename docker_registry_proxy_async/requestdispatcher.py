#!/usr/bin/env python

"""Per-request control flow."""

import logging
import os

from http import HTTPStatus

from aiohttp import hdrs
from multidict import CIMultiDict
from yarl import URL

from .httpclient import HttpClient
from .proxyconfig import ProxyConfig
from .responseforwarder import ResponseForwarder
from .router import Router
from .specs import DEFAULT_NAMESPACE, ErrorCodes, MediaTypes, Paths
from .staticdocs import StaticDocProvider
from .tokenbroker import TokenBroker
from .typing import (
    ProxyRequest,
    ProxyResponse,
    ProxyResult,
    ProxyResultChallenge,
    ProxyResultDirect,
    ProxyResultRedirect,
)
from .utils import error_response, json_response, release

LOGGER = logging.getLogger(__name__)


class RequestDispatcher:
    # pylint: disable=too-many-arguments
    """
    Decides how each inbound request is served. The first matching case wins:

        1. "/" renders the documentation.
        2. Unrouted hostnames are answered with the route table.
        3. The Docker Hub catalog is reported as unsupported.
        4. "/v2/" is probed upstream, challenging the client on 401.
        5. "/v2/auth" is delegated to the token broker.
        6. Docker Hub short names are redirected into the "library" namespace.
        7. Everything else is forwarded.
    """

    DEBUG = os.environ.get("DRPA_DEBUG", "")

    def __init__(
        self,
        *,
        config: ProxyConfig,
        http_client: HttpClient,
        response_forwarder: ResponseForwarder,
        router: Router,
        static_doc_provider: StaticDocProvider,
        token_broker: TokenBroker,
    ):
        self.config = config
        self.http_client = http_client
        self.response_forwarder = response_forwarder
        self.router = router
        self.static_doc_provider = static_doc_provider
        self.token_broker = token_broker

    async def _get_docs(self) -> ProxyResult:
        html = await self.static_doc_provider.render(domain=self.config.custom_domain)
        return ProxyResultDirect(
            response=ProxyResponse(
                body=html.encode("utf-8"),
                headers=CIMultiDict({hdrs.CONTENT_TYPE: MediaTypes.TEXT_HTML}),
                reason=None,
                status=HTTPStatus.OK,
            )
        )

    async def _probe_v2(self, request: ProxyRequest, *, upstream: str) -> ProxyResult:
        """Checks upstream whether the client must authenticate."""
        headers = CIMultiDict()
        if request.headers.get(hdrs.AUTHORIZATION):
            headers[hdrs.AUTHORIZATION] = request.headers[hdrs.AUTHORIZATION]
        response = await self.http_client.fetch(
            ProxyRequest(
                body=None,
                headers=headers,
                method=hdrs.METH_GET,
                url=URL(f"{upstream}{Paths.V2}"),
            ),
            allow_redirects=True,
        )
        if response.status == HTTPStatus.UNAUTHORIZED:
            release(response)
            return ProxyResultChallenge(realm=self.get_realm(request.url))
        return ProxyResultDirect(response=response)

    def _get_short_name_redirect(self, url: URL) -> ProxyResult:
        """
        Redirects a repository without namespace into the default namespace.

            /v2/busybox/manifests/latest => /v2/library/busybox/manifests/latest
        """
        parts = url.raw_path.split("/")
        parts.insert(2, DEFAULT_NAMESPACE)
        location = f"{self.get_base_url(url)}{'/'.join(parts)}"
        if url.raw_query_string:
            location = f"{location}?{url.raw_query_string}"
        return ProxyResultRedirect(
            location=location, status=HTTPStatus.MOVED_PERMANENTLY
        )

    def get_base_url(self, url: URL) -> str:
        """
        Generates the scheme and authority under which clients reach this proxy. TLS is
        terminated in front of the proxy in production.

        Args:
            url: The inbound request URL.

        Returns:
            The base URL, without trailing slash.
        """
        if self.config.is_debug():
            authority = url.raw_host
            if not url.is_default_port():
                authority = f"{authority}:{url.port}"
            return f"http://{authority}"
        return f"https://{url.raw_host}"

    def get_realm(self, url: URL) -> str:
        """
        Generates the token endpoint advertised to clients.

        Args:
            url: The inbound request URL.

        Returns:
            The realm URL.
        """
        return f"{self.get_base_url(url)}{Paths.AUTH}"

    async def dispatch(self, request: ProxyRequest) -> ProxyResult:
        """
        Serves an inbound request.

        Args:
            request: The inbound request.

        Returns:
            The result to be written to the client.
        """
        path = request.url.path
        if path == Paths.ROOT:
            return await self._get_docs()

        upstream = self.router.resolve_upstream(request.url.host)
        if not upstream:
            LOGGER.info("No route for hostname: %s", request.url.host)
            return ProxyResultDirect(
                response=json_response(
                    {"routes": dict(self.config.routes)}, status=HTTPStatus.NOT_FOUND
                )
            )
        if RequestDispatcher.DEBUG:
            LOGGER.debug("%s %s => %s", request.method, request.url, upstream)

        dockerhub = Router.is_dockerhub(upstream)
        if dockerhub and path == Paths.CATALOG:
            return ProxyResultDirect(
                response=error_response(
                    code=ErrorCodes.UNSUPPORTED,
                    detail="Docker Hub has disabled the /v2/_catalog endpoint due to performance "
                    "considerations. Please use specific image names instead.",
                    message="The catalog API is not supported by Docker Hub",
                    status=HTTPStatus.NOT_FOUND,
                )
            )

        if path == Paths.V2:
            return await self._probe_v2(request, upstream=upstream)

        if path == Paths.AUTH:
            return await self.token_broker.get_token(request, upstream=upstream)

        if dockerhub and len(request.url.raw_path.split("/")) == 5:
            return self._get_short_name_redirect(request.url)

        return await self.response_forwarder.forward(
            request, realm=self.get_realm(request.url), upstream=upstream
        )
