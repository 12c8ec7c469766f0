#!/usr/bin/env python

# pylint: disable=redefined-outer-name

"""DockerRegistryProxyAsync tests."""

import json
import logging

from http import HTTPStatus
from pathlib import Path
from typing import List

import pytest

from aiohttp import web
from aiohttp.test_utils import TestClient, TestServer

from docker_registry_proxy_async import (
    DockerRegistryProxyAsync,
    HttpClient,
    Modes,
    ProxyConfig,
    StaticDocProvider,
    Upstreams,
)

pytestmark = [pytest.mark.asyncio]

LOGGER = logging.getLogger(__name__)

MANIFEST = b'{"schemaVersion":2}'
TOKEN = "good-token"


class UpstreamState:
    # pylint: disable=too-few-public-methods
    """Observable state of the fake upstream registry."""

    def __init__(self):
        self.challenge = None
        self.token_requests = []  # type: List[web.Request]


def get_upstream_application(state: UpstreamState) -> web.Application:
    """Fake registry with an embedded token endpoint."""

    def challenge(request: web.Request) -> str:
        if state.challenge is not None:
            return state.challenge
        return f'Bearer realm="{request.url.origin()}/token",service="upstream"'

    def authorized(request: web.Request) -> bool:
        return request.headers.get("Authorization") == f"Bearer {TOKEN}"

    def unauthorized(request: web.Request, code: str) -> web.Response:
        return web.json_response(
            {"errors": [{"code": code, "message": code.lower()}]},
            headers={"Www-Authenticate": challenge(request)},
            status=HTTPStatus.UNAUTHORIZED,
        )

    async def get_v2(request: web.Request) -> web.Response:
        if not authorized(request):
            return unauthorized(request, "UNAUTHORIZED")
        return web.json_response({})

    async def get_token(request: web.Request) -> web.Response:
        state.token_requests.append(request)
        if request.headers.get("Authorization") == "Basic YmFkOmJhZA==":
            return web.json_response(
                {"details": "incorrect username or password"},
                status=HTTPStatus.UNAUTHORIZED,
            )
        return web.json_response(
            {
                "expires_in": 300,
                "issued_at": "2024-01-01T00:00:00Z",
                "scope": request.query.get("scope"),
                "token": TOKEN,
            }
        )

    async def get_manifest(request: web.Request) -> web.Response:
        if not authorized(request):
            return unauthorized(request, "UNAUTHORIZED")
        if request.match_info["reference"] == "denied":
            return unauthorized(request, "DENIED")
        return web.Response(
            body=MANIFEST,
            content_type="application/vnd.oci.image.manifest.v1+json",
            headers={"Docker-Content-Digest": "sha256:0123"},
        )

    async def put_blob_upload(request: web.Request) -> web.Response:
        data = await request.read()
        return web.json_response(
            {"digest": request.query.get("digest"), "size": len(data)},
            status=HTTPStatus.CREATED,
        )

    app = web.Application()
    app.router.add_get("/v2/", get_v2)
    app.router.add_get("/token", get_token)
    app.router.add_get("/v2/{name:.+}/manifests/{reference}", get_manifest)
    app.router.add_put("/v2/{name:.+}/blobs/uploads/{uuid}", put_blob_upload)
    return app


@pytest.fixture
def upstream_state() -> UpstreamState:
    """Provides an UpstreamState instance."""
    return UpstreamState()


@pytest.fixture
async def upstream(upstream_state: UpstreamState) -> TestServer:
    """Provides a running fake upstream registry."""
    server = TestServer(get_upstream_application(upstream_state))
    await server.start_server()
    yield server
    await server.close()


async def get_client(config: ProxyConfig) -> TestClient:
    """Starts a proxy for a given configuration."""
    docker_registry_proxy_async = DockerRegistryProxyAsync(
        config, http_client=HttpClient(no_proxy="127.0.0.1")
    )
    client = TestClient(TestServer(docker_registry_proxy_async.get_application()))
    await client.start_server()
    return client


@pytest.fixture
async def client(upstream: TestServer) -> TestClient:
    """Provides a client of a debug mode proxy that falls back to the fake upstream."""
    config = ProxyConfig.create(
        custom_domain="example.com",
        mode=Modes.DEBUG,
        target_upstream=str(upstream.make_url("/")),
    )
    client = await get_client(config)
    yield client
    await client.close()


async def test_docs(client: TestClient):
    """Test that the documentation is served."""
    response = await client.get("/")
    assert response.status == HTTPStatus.OK
    assert response.content_type == "text/html"
    assert "docker.example.com" in await response.text()


async def test_route_miss():
    """Test that unrouted hostnames are answered with the route table in production mode."""
    client = await get_client(ProxyConfig.create(custom_domain="example.com"))
    try:
        response = await client.get("/v2/")
        assert response.status == HTTPStatus.NOT_FOUND
        assert response.headers["Access-Control-Allow-Origin"] == "*"
        payload = json.loads(await response.read())
        assert payload["routes"]["docker.example.com"] == Upstreams.DOCKERHUB
    finally:
        await client.close()


async def test_short_name_redirect_https():
    """Test that short name redirects advertise HTTPS in production mode, like the realm."""
    client = await get_client(ProxyConfig.create(custom_domain="example.com"))
    try:
        response = await client.get(
            "/v2/busybox/manifests/latest",
            allow_redirects=False,
            headers={"Host": "docker.example.com"},
        )
        assert response.status == HTTPStatus.MOVED_PERMANENTLY
        assert response.headers["Location"] == (
            "https://docker.example.com/v2/library/busybox/manifests/latest"
        )
        assert response.headers["Access-Control-Allow-Origin"] == "*"
    finally:
        await client.close()


async def test_unexpected_error(tmp_path: Path):
    """Test that unexpected errors are reported as an internal error with CORS."""
    docker_registry_proxy_async = DockerRegistryProxyAsync(
        ProxyConfig.create(custom_domain="example.com"),
        static_doc_provider=StaticDocProvider(path=tmp_path.joinpath("missing.html")),
    )
    client = TestClient(TestServer(docker_registry_proxy_async.get_application()))
    await client.start_server()
    try:
        response = await client.get("/")
        assert response.status == HTTPStatus.INTERNAL_SERVER_ERROR
        assert response.headers["Access-Control-Allow-Origin"] == "*"
        payload = await response.json()
        assert payload["errors"][0]["code"] == "UNKNOWN"
    finally:
        await client.close()


async def test_v2_challenge(client: TestClient):
    """Test that anonymous clients are challenged to authenticate against the proxy."""
    response = await client.get("/v2/")
    assert response.status == HTTPStatus.UNAUTHORIZED
    assert response.headers["Www-Authenticate"] == (
        f'Bearer realm="http://{client.host}:{client.port}/v2/auth",'
        'service="cloudflare-docker-proxy"'
    )
    assert response.headers["Access-Control-Allow-Origin"] == "*"
    assert await response.json() == {"message": "UNAUTHORIZED"}


async def test_v2_authorized(client: TestClient):
    """Test that authorized probes are passed through."""
    response = await client.get("/v2/", headers={"Authorization": f"Bearer {TOKEN}"})
    assert response.status == HTTPStatus.OK
    assert await response.json() == {}


async def test_auth(client: TestClient, upstream_state: UpstreamState):
    """Test that tokens are issued and cached."""
    for _ in range(2):
        response = await client.get(
            "/v2/auth", params={"scope": "repository:user/image:pull"}
        )
        assert response.status == HTTPStatus.OK
        assert response.headers["Access-Control-Allow-Origin"] == "*"
        assert response.headers["Cache-Control"] == "public, max-age=240"
        payload = await response.json()
        assert payload["token"] == TOKEN
        assert payload["scope"] == "repository:user/image:pull"
    assert len(upstream_state.token_requests) == 1
    assert upstream_state.token_requests[0].query["service"] == "upstream"


async def test_auth_failure(client: TestClient, upstream_state: UpstreamState):
    """Test that auth failures are passed through and not cached."""
    for _ in range(2):
        response = await client.get(
            "/v2/auth",
            headers={"Authorization": "Basic YmFkOmJhZA=="},
            params={"scope": "repository:user/image:pull"},
        )
        assert response.status == HTTPStatus.UNAUTHORIZED
        assert response.headers["Access-Control-Allow-Origin"] == "*"
        assert "Www-Authenticate" not in response.headers
        assert await response.json() == {"details": "incorrect username or password"}
    assert len(upstream_state.token_requests) == 2


async def test_auth_invalid_challenge(
    client: TestClient, upstream_state: UpstreamState
):
    """Test that malformed upstream challenges are reported as internal errors."""
    upstream_state.challenge = 'Bearer realm="http://127.0.0.1/token"'
    response = await client.get("/v2/auth")
    assert response.status == HTTPStatus.INTERNAL_SERVER_ERROR
    assert response.headers["Access-Control-Allow-Origin"] == "*"
    payload = await response.json()
    assert payload["errors"][0]["code"] == "UNKNOWN"
    assert payload["errors"][0]["detail"] == upstream_state.challenge
    assert not upstream_state.token_requests


async def test_manifest(client: TestClient):
    """Test that authorized requests are forwarded."""
    response = await client.get(
        "/v2/user/image/manifests/latest",
        headers={"Authorization": f"Bearer {TOKEN}"},
    )
    assert response.status == HTTPStatus.OK
    assert response.headers["Access-Control-Allow-Origin"] == "*"
    assert response.headers["Docker-Content-Digest"] == "sha256:0123"
    assert response.content_type == "application/vnd.oci.image.manifest.v1+json"
    assert await response.read() == MANIFEST


async def test_manifest_anonymous(client: TestClient):
    """Test that anonymous requests are challenged."""
    response = await client.get("/v2/user/image/manifests/latest")
    assert response.status == HTTPStatus.UNAUTHORIZED
    assert "cloudflare-docker-proxy" in response.headers["Www-Authenticate"]
    assert await response.json() == {"message": "UNAUTHORIZED"}


async def test_manifest_denied(client: TestClient):
    """Test that a 401 despite credentials carries the upstream error."""
    response = await client.get(
        "/v2/user/image/manifests/denied",
        headers={"Authorization": f"Bearer {TOKEN}"},
    )
    assert response.status == HTTPStatus.UNAUTHORIZED
    assert response.headers["Access-Control-Allow-Origin"] == "*"
    assert "cloudflare-docker-proxy" not in response.headers["Www-Authenticate"]
    payload = await response.json()
    assert payload["errors"][0]["code"] == "DENIED"


async def test_blob_upload(client: TestClient):
    """Test that request bodies and query strings are forwarded."""
    data = b"0123456789" * 1024
    response = await client.put(
        "/v2/user/image/blobs/uploads/uuid",
        data=data,
        headers={"Authorization": f"Bearer {TOKEN}"},
        params={"digest": "sha256:0123"},
    )
    assert response.status == HTTPStatus.CREATED
    assert await response.json() == {"digest": "sha256:0123", "size": len(data)}


async def test_upstream_unavailable():
    """Test that unreachable upstreams are reported as a bad gateway."""
    config = ProxyConfig.create(
        custom_domain="example.com",
        mode=Modes.DEBUG,
        target_upstream="http://127.0.0.1:1",
    )
    client = await get_client(config)
    try:
        response = await client.get("/v2/user/image/manifests/latest")
        assert response.status == HTTPStatus.BAD_GATEWAY
        assert response.headers["Access-Control-Allow-Origin"] == "*"
        payload = await response.json()
        assert payload["errors"][0]["code"] == "UNAVAILABLE"
    finally:
        await client.close()


@pytest.mark.online
async def test_dockerhub_online():
    """Test that an anonymous token can be retrieved and used through the proxy for Docker Hub."""
    client = await get_client(ProxyConfig.create(custom_domain="example.com"))
    try:
        headers = {"Host": "docker.example.com"}
        response = await client.get("/v2/_catalog", headers=headers)
        assert response.status == HTTPStatus.NOT_FOUND

        response = await client.get(
            "/v2/auth", headers=headers, params={"scope": "repository:busybox:pull"}
        )
        assert response.status == HTTPStatus.OK
        token = (await response.json())["token"]
        assert len(token) > 100

        response = await client.get(
            "/v2/busybox/manifests/latest", allow_redirects=False, headers=headers
        )
        assert response.status == HTTPStatus.MOVED_PERMANENTLY
        assert response.headers["Location"].endswith(
            "/v2/library/busybox/manifests/latest"
        )

        headers["Authorization"] = f"Bearer {token}"
        response = await client.head(
            "/v2/library/busybox/manifests/latest", headers=headers
        )
        assert response.status == HTTPStatus.OK
        assert response.headers["Docker-Content-Digest"].startswith("sha256:")
    finally:
        await client.close()
