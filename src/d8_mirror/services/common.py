"""Pieces shared by the mirroring services."""

import asyncio
from pathlib import Path
from typing import Awaitable, Callable

from ..core.getter import RepositoryService

# Seconds allowed for the registry reachability check before pulling
ACCESS_CHECK_TIMEOUT = 15

# Packs a layouts directory into a named bundle file
BundlePacker = Callable[[Path, str], Awaitable[None]]


async def check_image_exists(service: RepositoryService, tag: str) -> None:
    """Check a tag exists, giving up after ACCESS_CHECK_TIMEOUT seconds.

    Raises:
        asyncio.TimeoutError: If the registry did not answer in time
        ImageNotFoundError: If the tag does not exist
        RegistryError: If the registry cannot be queried
    """
    await asyncio.wait_for(service.check_image_exists(tag), ACCESS_CHECK_TIMEOUT)
