#!/usr/bin/env python

"""Utility classes."""

from typing import Any, Iterable

import canonicaljson

from aiohttp import hdrs
from multidict import CIMultiDict

from .specs import Headers, MediaTypes
from .typing import HeadersType, ProxyResponse


def copy_headers(headers: HeadersType, *, exclude: Iterable[str] = ()) -> CIMultiDict:
    """
    Copies a header multimap, omitting hop-by-hop headers.

    Args:
        headers: The headers to be copied.
        exclude: Additional (case-insensitive) header names to be omitted.

    Returns:
        The mutable copy.
    """
    excluded = Headers.HOP_BY_HOP.union(x.lower() for x in exclude)
    result = CIMultiDict()
    for key, value in headers.items():
        if key.lower() not in excluded:
            result.add(key, value)
    return result


def json_response(obj: Any, *, status: int) -> ProxyResponse:
    """
    Generates a locally originated JSON response, visible to browser based clients.

    Args:
        obj: The object to be serialized as the response body.
        status: The HTTP status code.

    Returns:
        The generated response.
    """
    headers = CIMultiDict()
    headers[hdrs.ACCESS_CONTROL_ALLOW_ORIGIN] = "*"
    headers[hdrs.CONTENT_TYPE] = MediaTypes.APPLICATION_JSON
    return ProxyResponse(
        body=canonicaljson.encode_canonical_json(obj),
        headers=headers,
        reason=None,
        status=status,
    )


def error_response(*, code: str, detail: Any, message: str, status: int):
    """Generates a registry error envelope."""
    return json_response(
        {"errors": [{"code": code, "detail": detail, "message": message}]},
        status=status,
    )


async def read_body(response: ProxyResponse) -> bytes:
    """
    Reads the remainder of a response body and releases the upstream connection.

    Args:
        response: The response from which to read the body.

    Returns:
        The response body.
    """
    if isinstance(response.body, bytes):
        return response.body
    try:
        return await response.body.read()
    finally:
        release(response)


def release(response: ProxyResponse):
    """Releases the upstream connection backing a response, if any."""
    if response.client_response is not None:
        response.client_response.close()
