"""Example usage of the async mirroring operations."""

import asyncio
import logging
import sys
import tarfile
from pathlib import Path

# Add parent directory to path
sys.path.insert(0, "src")

from d8_mirror import (
    MirrorError,
    check_registry_connectivity,
    pull_installer,
    pull_security_databases,
)
from d8_mirror.utils import setup_logging

logger = logging.getLogger(__name__)


async def pack_bundle(directory: Path, bundle_name: str) -> None:
    """Pack a layouts directory next to itself as a plain tar."""

    def pack() -> None:
        with tarfile.open(directory.parent / bundle_name, "w") as tar:
            tar.add(directory, arcname=".")

    await asyncio.to_thread(pack)


async def main():
    """Mirror the installer and the security databases of a local registry."""
    registry_url = "localhost:15000/deckhouse/ee"
    working_dir = Path("./mirror")

    try:
        logger.info("Checking registry connectivity...")
        if not await check_registry_connectivity(registry_url, insecure=True):
            logger.error("Registry does not serve the v2 API")
            return

        layout = await pull_installer(
            registry_url,
            working_dir,
            insecure=True,
            retry_interval=2,
            bundle_packer=pack_bundle,
        )
        meta = layout.get_meta("latest")
        logger.info(f"Installer {meta.tag_reference} pinned to {meta.digest}")

        layouts = await pull_security_databases(registry_url, working_dir, insecure=True)
        for name, db_layout in layouts.items():
            logger.info(f"  {name}: {len(db_layout.descriptors())} manifests in {db_layout.path}")

    except MirrorError as e:
        logger.error(f"Mirror error: {e}")


if __name__ == "__main__":
    setup_logging("INFO")
    asyncio.run(main())
