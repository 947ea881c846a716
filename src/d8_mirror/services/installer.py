"""Mirroring of the installer image."""

import asyncio
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Union

from ..core.getter import RepositoryService
from ..exceptions import MirrorError, ServiceError
from ..image.indexes import sort_index_manifests
from ..image.layout import ImageLayout
from ..puller.download_list import ImageDownloadList
from ..puller.puller import PullConfig, PullerService
from ..utils.log import UserLogger
from .common import BundlePacker, check_image_exists

DEFAULT_TARGET_TAG = "latest"
INSTALLER_SEGMENT = "installer"
INSTALLER_BUNDLE_NAME = "installer.tar"


@dataclass
class InstallerOptions:
    """Installer mirroring options.

    Attributes:
        target_tag: Tag to mirror instead of "latest": a version (vX.Y.Z), a
            release channel (alpha, stable, ...) or any other tag
    """

    target_tag: str = ""


class InstallerDownloadList(ImageDownloadList):
    """Installer image references, one per tag."""

    def fill_installer_images(self, tags_to_mirror: list[str]) -> None:
        for tag in tags_to_mirror:
            self.add(f"{self.root_url}:{tag}")


class InstallerService:
    """Pulls the installer image into <working_dir>/installer."""

    def __init__(
        self,
        registry: RepositoryService,
        working_dir: Union[str, Path],
        options: Optional[InstallerOptions] = None,
        logger: Optional[logging.Logger] = None,
        user_logger: Optional[UserLogger] = None,
        puller: Optional[PullerService] = None,
        bundle_packer: Optional[BundlePacker] = None,
    ) -> None:
        self.installer_service = registry.with_segment(INSTALLER_SEGMENT)
        self.working_dir = Path(working_dir) / INSTALLER_SEGMENT
        self.options = options or InstallerOptions()
        self.logger = logger or logging.getLogger(__name__)
        self.user_logger = user_logger or UserLogger()
        self.puller = puller or PullerService(self.logger, self.user_logger)
        self.bundle_packer = bundle_packer

        self.download_list = InstallerDownloadList(self.installer_service.get_root())
        self.layout: Optional[ImageLayout] = None

    @property
    def target_tag(self) -> str:
        return self.options.target_tag or DEFAULT_TARGET_TAG

    async def pull_installer(self) -> None:
        """Validate registry access and pull the installer image.

        Raises:
            ServiceError: If the registry is unreachable or the pull fails
        """
        await self.validate_installer_access()

        self.download_list.fill_installer_images(self.find_tags_to_mirror())

        try:
            await self._pull_installer()
        except MirrorError as e:
            raise ServiceError(f"pull installer: {e}") from e

    async def validate_installer_access(self) -> None:
        self.logger.debug("Validating access to the installer registry, tag %s", self.target_tag)

        try:
            await check_image_exists(self.installer_service, self.target_tag)
        except (asyncio.TimeoutError, MirrorError) as e:
            raise ServiceError(
                f"failed to check installer tag {self.target_tag!r} exists in registry: {e}"
            ) from e

    def find_tags_to_mirror(self) -> list[str]:
        return [self.target_tag]

    async def _pull_installer(self) -> None:
        self.user_logger.infof("Creating OCI Image Layouts for Installer")
        self.layout = ImageLayout.create(self.working_dir)

        with self.user_logger.process("Pull installer"):
            await self.puller.pull_images(
                PullConfig(
                    name="installer",
                    image_set=self.download_list.images,
                    layout=self.layout,
                    getter_service=self.installer_service,
                    allow_missing_tags=not self.options.target_tag,
                )
            )

        with self.user_logger.process("Processing installer image index"):
            sort_index_manifests(self.layout.path)

        if self.bundle_packer is not None:
            with self.user_logger.process(f"Pack installer images into {INSTALLER_BUNDLE_NAME}"):
                await self.bundle_packer(self.working_dir, INSTALLER_BUNDLE_NAME)
