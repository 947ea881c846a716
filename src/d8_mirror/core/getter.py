"""Digest and image fetching for one registry repository."""

import json
import logging
from typing import AsyncIterator, Optional, Protocol

from ..exceptions import DigestError, ImageNotFoundError, ManifestError
from ..image.image import INDEX_MEDIA_TYPES, Descriptor, Image
from ..utils.digest import calculate_digest, validate_digest
from .registry_client import RegistryClient

logger = logging.getLogger(__name__)


class GetterService(Protocol):
    """Capability the puller needs from a registry repository."""

    async def get_digest(self, tag: str) -> str: ...

    async def get_image(self, reference: str) -> Image: ...


class RepositoryService(GetterService, Protocol):
    """GetterService that can also navigate and probe the repository tree."""

    def get_root(self) -> str: ...

    def with_segment(self, segment: str) -> "RepositoryService": ...

    async def check_image_exists(self, tag: str) -> None: ...


class RemoteBlobSource:
    """Blob source streaming from a registry repository."""

    def __init__(self, client: RegistryClient) -> None:
        self.client = client

    def iter_blob(self, digest: str) -> AsyncIterator[bytes]:
        return self.client.stream_blob(digest)


class RegistryImageService:
    """GetterService backed by a registry repository.

    Multi-platform images are resolved to the configured platform both when
    resolving a digest and when fetching an image, so the digest pinned for
    a tag is the digest of the manifest that gets pulled.
    """

    def __init__(self, client: RegistryClient, platform: Optional[str] = None) -> None:
        self.client = client
        self.platform = platform or client.config.platform

    def get_root(self) -> str:
        return self.client.get_registry()

    def with_segment(self, segment: str) -> "RegistryImageService":
        return RegistryImageService(self.client.with_segment(segment), self.platform)

    async def check_image_exists(self, tag: str) -> None:
        """Check that a tag exists.

        Raises:
            ImageNotFoundError: If the tag does not exist
            RegistryError: If the registry cannot be queried
        """
        await self.client.head_manifest(tag)

    async def get_digest(self, tag: str) -> str:
        """Resolve a tag to the digest of its image manifest.

        Args:
            tag: Tag to resolve

        Returns:
            Manifest digest for the configured platform

        Raises:
            ImageNotFoundError: If the tag (or its platform manifest) does not exist
            RegistryError: If the registry cannot be queried
        """
        head = await self.client.head_manifest(tag)
        if head.digest and head.media_type and head.media_type not in INDEX_MEDIA_TYPES:
            return head.digest

        raw, media_type = await self.client.get_manifest(tag)
        if media_type in INDEX_MEDIA_TYPES:
            return self._select_platform(raw, tag).digest

        return calculate_digest(raw)

    async def get_image(self, reference: str) -> Image:
        """Fetch an image by tag or by "@<digest>".

        Raises:
            ImageNotFoundError: If the image does not exist
            DigestError: If the served manifest does not match the requested digest
            RegistryError: If the registry cannot be queried
        """
        reference = reference[1:] if reference.startswith("@") else reference

        raw, media_type = await self._get_verified_manifest(reference)
        if media_type in INDEX_MEDIA_TYPES:
            child = self._select_platform(raw, reference)
            logger.debug("Resolved %s to %s for %s", reference, child.digest, self.platform)
            raw, media_type = await self._get_verified_manifest(child.digest)

        return Image(raw, media_type, RemoteBlobSource(self.client))

    async def _get_verified_manifest(self, reference: str) -> tuple[bytes, str]:
        raw, media_type = await self.client.get_manifest(reference)
        if validate_digest(reference):
            algorithm = reference.split(":", 1)[0]
            actual = calculate_digest(raw, algorithm)
            if actual != reference:
                raise DigestError(
                    f"Manifest digest mismatch: expected {reference}, got {actual}"
                )
        return raw, media_type

    def _select_platform(self, raw_index: bytes, reference: str) -> Descriptor:
        try:
            index = json.loads(raw_index)
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            raise ManifestError(f"Invalid image index {reference}: {e}") from e

        os_name, _, rest = self.platform.partition("/")
        architecture, _, variant = rest.partition("/")

        for item in index.get("manifests") or []:
            platform = item.get("platform") or {}
            if platform.get("os") != os_name or platform.get("architecture") != architecture:
                continue
            if variant and platform.get("variant") != variant:
                continue
            return Descriptor.from_dict(item)

        raise ImageNotFoundError(
            f"{self.get_root()}:{reference} has no manifest for platform {self.platform}"
        )
