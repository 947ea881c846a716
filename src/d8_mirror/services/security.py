"""Mirroring of the vulnerability scanner databases."""

import asyncio
import logging
from pathlib import Path
from typing import Dict, Optional, Union

from ..core.getter import RepositoryService
from ..exceptions import ImageNotFoundError, MirrorError, ServiceError
from ..image.indexes import sort_index_manifests
from ..image.layout import ImageLayout
from ..puller.download_list import ImageDownloadList
from ..puller.puller import PullConfig, PullerService
from ..utils.log import UserLogger
from .common import BundlePacker, check_image_exists

SECURITY_SEGMENT = "security"
SECURITY_BUNDLE_NAME = "security.tar"

TRIVY_DB_NAME = "trivy-db"
TRIVY_BDU_NAME = "trivy-bdu"
TRIVY_JAVA_DB_NAME = "trivy-java-db"
TRIVY_CHECKS_NAME = "trivy-checks"

# Tags are the database schema versions read by the platform scanner
SECURITY_DATABASES = {
    TRIVY_DB_NAME: "2",
    TRIVY_BDU_NAME: "1",
    TRIVY_JAVA_DB_NAME: "1",
    TRIVY_CHECKS_NAME: "0",
}


class SecurityDownloadList:
    """Security database image references, one download list per database."""

    def __init__(self, root_url: str) -> None:
        self.root_url = root_url.rstrip("/")
        self.databases: Dict[str, ImageDownloadList] = {}

    def fill_security_images(self) -> None:
        for name, tag in SECURITY_DATABASES.items():
            download_list = self.databases.setdefault(
                name, ImageDownloadList(f"{self.root_url}/{SECURITY_SEGMENT}/{name}")
            )
            download_list.add(f"{download_list.root_url}:{tag}")


class SecurityService:
    """Pulls the security databases into <working_dir>/security/<database>."""

    def __init__(
        self,
        registry: RepositoryService,
        working_dir: Union[str, Path],
        logger: Optional[logging.Logger] = None,
        user_logger: Optional[UserLogger] = None,
        puller: Optional[PullerService] = None,
        bundle_packer: Optional[BundlePacker] = None,
    ) -> None:
        self.security_service = registry.with_segment(SECURITY_SEGMENT)
        self.working_dir = Path(working_dir) / SECURITY_SEGMENT
        self.logger = logger or logging.getLogger(__name__)
        self.user_logger = user_logger or UserLogger()
        self.puller = puller or PullerService(self.logger, self.user_logger)
        self.bundle_packer = bundle_packer

        self.download_list = SecurityDownloadList(registry.get_root())
        self.layouts: Dict[str, ImageLayout] = {}

    async def pull_security(self) -> bool:
        """Pull the security databases.

        Returns:
            False if the registry carries no security databases and nothing
            was pulled, True otherwise

        Raises:
            ServiceError: If the registry is unreachable or a pull fails
        """
        if not await self.validate_security_access():
            return False

        try:
            await self._pull_security_databases()
        except MirrorError as e:
            raise ServiceError(f"pull security databases: {e}") from e

        return True

    async def validate_security_access(self) -> bool:
        """Check the primary database is served by the registry.

        Returns:
            False if the registry has no security databases

        Raises:
            ServiceError: If the registry cannot be queried
        """
        self.logger.debug("Validating access to the security registry")

        trivy_db = self.security_service.with_segment(TRIVY_DB_NAME)
        try:
            await check_image_exists(trivy_db, SECURITY_DATABASES[TRIVY_DB_NAME])
        except ImageNotFoundError as e:
            self.user_logger.warnf("Skipping pull of security databases: %s", e)
            return False
        except (asyncio.TimeoutError, MirrorError) as e:
            raise ServiceError(f"validate security access: failed to check tag exists: {e}") from e

        return True

    def create_layouts(self) -> None:
        self.user_logger.infof("Creating OCI Image Layouts for Security")
        for name in SECURITY_DATABASES:
            self.layouts[name] = ImageLayout.create(self.working_dir / name)

    async def _pull_security_databases(self) -> None:
        self.create_layouts()
        self.download_list.fill_security_images()

        with self.user_logger.process("Pull Security Databases"):
            for name, download_list in self.download_list.databases.items():
                await self.puller.pull_images(
                    PullConfig(
                        name=f"Security Databases {name}",
                        image_set=download_list.images,
                        layout=self.layouts[name],
                        getter_service=self.security_service.with_segment(name),
                        allow_missing_tags=True,
                    )
                )
                self.user_logger.info()

        with self.user_logger.process("Processing security image indexes"):
            for layout in self.layouts.values():
                sort_index_manifests(layout.path)

        if self.bundle_packer is not None:
            with self.user_logger.process(f"Pack security images into {SECURITY_BUNDLE_NAME}"):
                await self.bundle_packer(self.working_dir, SECURITY_BUNDLE_NAME)
