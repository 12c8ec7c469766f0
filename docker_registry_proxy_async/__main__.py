#!/usr/bin/env python

"""Command line entry point."""

import logging
import os

from aiohttp import web

from .dockerregistryproxyasync import DockerRegistryProxyAsync
from .proxyconfig import ProxyConfig

LOGGER = logging.getLogger(__name__)


def main():
    """Runs the proxy until interrupted."""
    logging.basicConfig(
        level=os.environ.get("DRPA_LOG_LEVEL", "INFO").upper(),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    config = ProxyConfig.from_environ()
    LOGGER.info(
        "Proxying %d routes under %s (mode: %s)",
        len(config.routes),
        config.custom_domain,
        config.mode,
    )
    docker_registry_proxy_async = DockerRegistryProxyAsync(config)
    web.run_app(
        docker_registry_proxy_async.get_application(),
        host=config.host,
        port=config.port,
    )


if __name__ == "__main__":
    main()
