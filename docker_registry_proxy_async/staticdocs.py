#!/usr/bin/env python

"""Landing page documentation."""

from pathlib import Path

import aiofiles

PLACEHOLDER_HOST = "{{host}}"


class StaticDocProvider:
    """
    Renders the documentation template served on the root path.
    """

    DEFAULT_TEMPLATE = Path(__file__).parent.joinpath("help.html")

    def __init__(self, *, path: Path = None):
        """
        Args:
            path: Path of the template; defaults to the bundled template.
        """
        self.path = path if path else StaticDocProvider.DEFAULT_TEMPLATE
        self.template = None

    async def render(self, *, domain: str) -> str:
        """
        Renders the documentation for a given domain.

        Args:
            domain: Value substituted for every "{{host}}" placeholder.

        Returns:
            The rendered HTML.
        """
        if self.template is None:
            async with aiofiles.open(self.path, mode="r", encoding="utf-8") as file:
                self.template = await file.read()
        return self.template.replace(PLACEHOLDER_HOST, domain)
