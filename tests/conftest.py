#!/usr/bin/env python

# pylint: disable=redefined-outer-name

"""Configures execution of pytest."""

import pytest

from docker_registry_proxy_async import (
    MemoryTokenCache,
    Modes,
    ProxyConfig,
    RequestDispatcher,
    ResponseForwarder,
    Router,
    StaticDocProvider,
    TokenBroker,
)

from .testutils import FakeClock, FakeHttpClient


def pytest_addoption(parser):
    """pytest add option."""
    parser.addoption(
        "--allow-online",
        action="store_true",
        default=False,
        help="Allow execution of online tests.",
    )


def pytest_collection_modifyitems(config, items):
    """pytest collection modifier."""

    skip_online = pytest.mark.skip(
        reason="Execution of online tests requires --allow-online option."
    )
    for item in items:
        if "online" in item.keywords and not config.getoption("--allow-online"):
            item.add_marker(skip_online)


def pytest_configure(config):
    """pytest configuration hook."""
    config.addinivalue_line("markers", "online: allow execution of online tests.")


@pytest.fixture
def clock() -> FakeClock:
    """Provides a FakeClock instance."""
    return FakeClock()


@pytest.fixture
def fake_http_client() -> FakeHttpClient:
    """Provides a FakeHttpClient instance without canned responses."""
    return FakeHttpClient()


@pytest.fixture
def proxy_config() -> ProxyConfig:
    """Provides a production ProxyConfig instance."""
    return ProxyConfig.create(custom_domain="example.com")


@pytest.fixture
def proxy_config_debug() -> ProxyConfig:
    """Provides a debug ProxyConfig instance."""
    return ProxyConfig.create(
        custom_domain="example.com",
        mode=Modes.DEBUG,
        target_upstream="https://registry.example.net/",
    )


@pytest.fixture
def token_cache(clock: FakeClock) -> MemoryTokenCache:
    """Provides a MemoryTokenCache instance driven by the fake clock."""
    return MemoryTokenCache(clock=clock)


@pytest.fixture
def token_broker(
    fake_http_client: FakeHttpClient, token_cache: MemoryTokenCache
) -> TokenBroker:
    """Provides a TokenBroker instance."""
    return TokenBroker(http_client=fake_http_client, token_cache=token_cache)


def get_request_dispatcher(
    config: ProxyConfig, http_client: FakeHttpClient, token_broker: TokenBroker
) -> RequestDispatcher:
    """Assembles a RequestDispatcher."""
    return RequestDispatcher(
        config=config,
        http_client=http_client,
        response_forwarder=ResponseForwarder(http_client=http_client),
        router=Router(config),
        static_doc_provider=StaticDocProvider(),
        token_broker=token_broker,
    )


@pytest.fixture
def request_dispatcher(
    fake_http_client: FakeHttpClient,
    proxy_config: ProxyConfig,
    token_broker: TokenBroker,
) -> RequestDispatcher:
    """Provides a production RequestDispatcher instance."""
    return get_request_dispatcher(proxy_config, fake_http_client, token_broker)


@pytest.fixture
def request_dispatcher_debug(
    fake_http_client: FakeHttpClient,
    proxy_config_debug: ProxyConfig,
    token_broker: TokenBroker,
) -> RequestDispatcher:
    """Provides a debug RequestDispatcher instance."""
    return get_request_dispatcher(proxy_config_debug, fake_http_client, token_broker)
