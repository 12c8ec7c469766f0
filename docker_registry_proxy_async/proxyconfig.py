#!/usr/bin/env python

"""Proxy configuration."""

import os

from types import MappingProxyType
from typing import Mapping, NamedTuple

from .specs import Modes, ROUTE_PREFIXES


class ProxyConfig(NamedTuple):
    """
    Immutable proxy configuration; constructed once at startup.
    """

    custom_domain: str
    mode: str
    routes: Mapping[str, str]
    target_upstream: str
    host: str = "0.0.0.0"
    port: int = 8080
    token_cache_size: int = 1024

    @staticmethod
    def create(
        *,
        custom_domain: str,
        mode: str = Modes.PRODUCTION,
        target_upstream: str = "",
        **kwargs,
    ) -> "ProxyConfig":
        """
        Initializes a ProxyConfig, deriving the route table from a domain suffix.

        Args:
            custom_domain: Domain suffix under which each upstream registry is exposed.
            mode: Operating mode; either "production" or "debug".
            target_upstream: Fallback upstream for unrouted hostnames, in debug mode.
        Keyword Args:
            host: Address on which to listen.
            port: Port on which to listen.
            token_cache_size: Maximum number of cached token responses.

        Returns:
            The newly initialized object.
        """
        if mode not in [Modes.DEBUG, Modes.PRODUCTION]:
            raise ValueError(f"Unsupported mode: {mode}")
        routes = {
            f"{prefix}.{custom_domain}".lower(): upstream
            for prefix, upstream in ROUTE_PREFIXES
        }
        return ProxyConfig(
            custom_domain=custom_domain,
            mode=mode,
            routes=MappingProxyType(routes),
            target_upstream=target_upstream.rstrip("/"),
            **kwargs,
        )

    @staticmethod
    def from_environ(environ: Mapping[str, str] = None) -> "ProxyConfig":
        """
        Initializes a ProxyConfig from environment variables.

        Environment Variables:
            CUSTOM_DOMAIN: Domain suffix of the routed hostnames. Default: localhost
            MODE: Operating mode (production, debug). Default: production
            TARGET_UPSTREAM: Fallback upstream in debug mode. Default: <empty>
            DRPA_HOST: Server bind address. Default: 0.0.0.0
            DRPA_PORT: Server bind port. Default: 8080
            DRPA_TOKEN_CACHE_SIZE: Number of token responses to cache. Default: 1024

        Args:
            environ: The environment from which to read; defaults to os.environ.

        Returns:
            The newly initialized object.
        """
        if environ is None:
            environ = os.environ
        return ProxyConfig.create(
            custom_domain=environ.get("CUSTOM_DOMAIN", "localhost"),
            host=environ.get("DRPA_HOST", "0.0.0.0"),
            mode=environ.get("MODE", Modes.PRODUCTION),
            port=int(environ.get("DRPA_PORT", "8080")),
            target_upstream=environ.get("TARGET_UPSTREAM", ""),
            token_cache_size=int(environ.get("DRPA_TOKEN_CACHE_SIZE", "1024")),
        )

    def is_debug(self) -> bool:
        """Returns True if running in debug mode."""
        return self.mode == Modes.DEBUG
