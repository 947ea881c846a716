"""Image handles shared by the registry getters and the OCI image layout."""

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, AsyncIterator, Optional, Protocol

import aiofiles

from ..exceptions import ImageMetaNotFoundError, LayoutError, ManifestError
from ..utils.digest import calculate_digest, parse_digest
from .meta import ImageMeta

OCI_MANIFEST = "application/vnd.oci.image.manifest.v1+json"
OCI_INDEX = "application/vnd.oci.image.index.v1+json"
DOCKER_MANIFEST = "application/vnd.docker.distribution.manifest.v2+json"
DOCKER_MANIFEST_LIST = "application/vnd.docker.distribution.manifest.list.v2+json"

IMAGE_MEDIA_TYPES = (OCI_MANIFEST, DOCKER_MANIFEST)
INDEX_MEDIA_TYPES = (OCI_INDEX, DOCKER_MANIFEST_LIST)

CHUNK_SIZE = 1024 * 1024


@dataclass
class Descriptor:
    """OCI content descriptor."""

    media_type: str
    digest: str
    size: int
    annotations: dict[str, str] = field(default_factory=dict)
    platform: Optional[dict[str, Any]] = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "mediaType": self.media_type,
            "digest": self.digest,
            "size": self.size,
        }
        if self.annotations:
            data["annotations"] = dict(sorted(self.annotations.items()))
        if self.platform:
            data["platform"] = self.platform
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Descriptor":
        try:
            return cls(
                media_type=data.get("mediaType", ""),
                digest=parse_digest(data["digest"]),
                size=int(data.get("size", 0)),
                annotations=dict(data.get("annotations") or {}),
                platform=data.get("platform"),
            )
        except (KeyError, TypeError, ValueError) as e:
            raise ManifestError(f"Invalid descriptor {data!r}: {e}") from e


class BlobSource(Protocol):
    """Something able to stream blobs of an image by digest."""

    def iter_blob(self, digest: str) -> AsyncIterator[bytes]: ...


def blob_path(layout_path: Path, digest: str) -> Path:
    """Path of a blob inside an OCI image layout."""
    algorithm, hex_part = parse_digest(digest).split(":", 1)
    return layout_path / "blobs" / algorithm / hex_part


class LayoutBlobSource:
    """Blob source reading from an OCI image layout directory."""

    def __init__(self, layout_path: Path) -> None:
        self.layout_path = Path(layout_path)

    async def iter_blob(self, digest: str) -> AsyncIterator[bytes]:
        path = blob_path(self.layout_path, digest)
        try:
            async with aiofiles.open(path, "rb") as f:
                while True:
                    chunk = await f.read(CHUNK_SIZE)
                    if not chunk:
                        break
                    yield chunk
        except FileNotFoundError as e:
            raise LayoutError(f"Blob {digest} not found in {self.layout_path}") from e


class Image:
    """Single-platform image: a raw manifest plus access to its blobs.

    Args:
        raw_manifest: Manifest bytes exactly as served, the digest is computed over them
        media_type: Manifest media type
        blobs: Source the config and layer blobs are streamed from
        metadata: Tag/digest binding attached by the puller
    """

    def __init__(
        self,
        raw_manifest: bytes,
        media_type: str,
        blobs: BlobSource,
        metadata: Optional[ImageMeta] = None,
    ) -> None:
        if media_type in INDEX_MEDIA_TYPES:
            raise ManifestError(f"Expected an image manifest, got {media_type}")

        self.raw_manifest = raw_manifest
        self.media_type = media_type
        self.blobs = blobs
        self._metadata = metadata
        self._manifest: Optional[dict[str, Any]] = None

    @property
    def digest(self) -> str:
        return calculate_digest(self.raw_manifest)

    @property
    def size(self) -> int:
        return len(self.raw_manifest)

    @property
    def manifest(self) -> dict[str, Any]:
        if self._manifest is None:
            try:
                manifest = json.loads(self.raw_manifest)
            except (json.JSONDecodeError, UnicodeDecodeError) as e:
                raise ManifestError(f"Invalid image manifest: {e}") from e
            if not isinstance(manifest, dict):
                raise ManifestError("Invalid image manifest: not an object")
            self._manifest = manifest
        return self._manifest

    def blob_descriptors(self) -> list[Descriptor]:
        """Descriptors of the config blob followed by the layers."""
        config = self.manifest.get("config")
        if not isinstance(config, dict):
            raise ManifestError("Image manifest has no config descriptor")

        layers = self.manifest.get("layers") or []
        return [Descriptor.from_dict(config)] + [
            Descriptor.from_dict(layer) for layer in layers
        ]

    def descriptor(self, annotations: Optional[dict[str, str]] = None) -> Descriptor:
        """Descriptor pointing at this image's manifest."""
        return Descriptor(
            media_type=self.media_type,
            digest=self.digest,
            size=self.size,
            annotations=dict(annotations or {}),
        )

    def iter_blob(self, digest: str) -> AsyncIterator[bytes]:
        return self.blobs.iter_blob(digest)

    def get_metadata(self) -> ImageMeta:
        if self._metadata is None:
            raise ImageMetaNotFoundError("Image has no metadata attached")
        return self._metadata

    def with_metadata(self, metadata: ImageMeta) -> "Image":
        """Return a copy of the image carrying the given metadata."""
        return Image(self.raw_manifest, self.media_type, self.blobs, metadata)
