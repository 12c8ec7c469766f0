#!/usr/bin/env python

"""Parsing and formatting of registry "Www-Authenticate" challenges."""

import re

from .typing import AuthChallenge

# Quoted values that immediately follow an '=', allowing escaped characters.
PATTERN_QUOTED_VALUE = re.compile(r'(?<==")(?:\\.|[^"\\])*(?=")')


class ChallengeParseError(ValueError):
    """Raised when a challenge does not carry both a realm and a service."""

    def __init__(self, header: str):
        super().__init__(f"Invalid Www-Authenticate header: {header}")
        self.header = header


def format_challenge(*, realm: str, service: str) -> str:
    """
    Formats a bearer challenge.

    Args:
        realm: URL of the token endpoint.
        service: Name of the service issuing the challenge.

    Returns:
        The "Www-Authenticate" header value.
    """
    return f'Bearer realm="{realm}",service="{service}"'


def parse_challenge(header: str) -> AuthChallenge:
    """
    Parses the realm and service from a bearer challenge.

    Attribute names are not inspected; the first quoted value is the realm and the second is the
    service, as emitted by registry implementations:

        Bearer realm="https://auth.docker.io/token",service="registry.docker.io"

    Args:
        header: The "Www-Authenticate" header value.

    Returns:
        The parsed challenge.
    """
    matches = PATTERN_QUOTED_VALUE.findall(header or "")
    if len(matches) < 2 or not all(matches[:2]):
        raise ChallengeParseError(header)
    return AuthChallenge(realm=matches[0], service=matches[1])
