#!/usr/bin/env python

"""Hostname to upstream registry routing."""

from typing import Optional

from .proxyconfig import ProxyConfig
from .specs import Upstreams


class Router:
    """
    Resolves inbound hostnames against the static route table.
    """

    def __init__(self, config: ProxyConfig):
        """
        Args:
            config: The proxy configuration providing the route table.
        """
        self.config = config

    @staticmethod
    def is_dockerhub(upstream: str) -> bool:
        """Returns True if the given upstream is Docker Hub."""
        return upstream == Upstreams.DOCKERHUB

    def resolve_upstream(self, hostname: str) -> Optional[str]:
        """
        Resolves the upstream registry for a given hostname.

        Args:
            hostname: The inbound hostname, without port.

        Returns:
            The upstream base URL, or None if the hostname is not routed.
        """
        upstream = self.config.routes.get((hostname or "").lower())
        if upstream:
            return upstream
        if self.config.is_debug() and self.config.target_upstream:
            return self.config.target_upstream
        return None
