#!/usr/bin/env python

"""An AIOHTTP based reverse proxy for Docker Registries."""

from .authchallenge import ChallengeParseError, format_challenge, parse_challenge
from .dockerregistryproxyasync import DockerRegistryProxyAsync
from .httpclient import HttpClient
from .proxyconfig import ProxyConfig
from .requestdispatcher import RequestDispatcher
from .responseforwarder import ResponseForwarder
from .router import Router
from .specs import Modes, Upstreams
from .staticdocs import StaticDocProvider
from .tokenbroker import TokenBroker
from .tokencache import MemoryTokenCache, TokenCache

__version__ = "0.1.0"
