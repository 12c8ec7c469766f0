#!/usr/bin/env python

# pylint: disable=missing-class-docstring,too-few-public-methods

"""Typing classes."""

from typing import Optional, Tuple, NamedTuple, Union

from aiohttp import ClientResponse, StreamReader
from multidict import CIMultiDict, CIMultiDictProxy
from yarl import URL

HeadersType = Union[CIMultiDict, CIMultiDictProxy]


class AuthChallenge(NamedTuple):
    realm: str
    service: str


class CachedToken(NamedTuple):
    body: bytes
    headers: Tuple[Tuple[str, str], ...]
    reason: Optional[str]
    status: int


class ProxyRequest(NamedTuple):
    body: Optional[StreamReader]
    headers: HeadersType
    method: str
    url: URL


class ProxyResponse(NamedTuple):
    body: Union[bytes, StreamReader]
    headers: HeadersType
    reason: Optional[str]
    status: int
    client_response: Optional[ClientResponse] = None


class ProxyResultChallenge(NamedTuple):
    realm: str


class ProxyResultDirect(NamedTuple):
    response: ProxyResponse


class ProxyResultForward(NamedTuple):
    response: ProxyResponse


class ProxyResultRedirect(NamedTuple):
    location: str
    status: int


ProxyResult = Union[
    ProxyResultChallenge, ProxyResultDirect, ProxyResultForward, ProxyResultRedirect
]
