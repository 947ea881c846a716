"""Test helpers: in-memory images and a scripted getter service."""

import json
from typing import AsyncIterator, Dict, List, Optional

from d8_mirror.exceptions import ImageNotFoundError, LayoutError
from d8_mirror.image.image import OCI_MANIFEST, Image
from d8_mirror.utils.digest import calculate_digest


class MemoryBlobSource:
    """Blob source serving blobs from a dict."""

    def __init__(self, blobs: Dict[str, bytes]) -> None:
        self.blobs = blobs

    async def iter_blob(self, digest: str) -> AsyncIterator[bytes]:
        if digest not in self.blobs:
            raise LayoutError(f"blob {digest} missing")
        data = self.blobs[digest]
        # Two chunks to exercise incremental hashing
        yield data[: len(data) // 2]
        yield data[len(data) // 2 :]


def build_manifest(layers: List[bytes], config: Optional[bytes] = None) -> tuple[bytes, Dict[str, bytes]]:
    """Build a raw OCI image manifest and the blobs it references."""
    config = config if config is not None else json.dumps(
        {"architecture": "amd64", "os": "linux"}
    ).encode("utf-8")
    blobs = {calculate_digest(config): config}
    layer_descriptors = []
    for layer in layers:
        digest = calculate_digest(layer)
        blobs[digest] = layer
        layer_descriptors.append(
            {
                "mediaType": "application/vnd.oci.image.layer.v1.tar+gzip",
                "digest": digest,
                "size": len(layer),
            }
        )

    manifest = {
        "schemaVersion": 2,
        "mediaType": OCI_MANIFEST,
        "config": {
            "mediaType": "application/vnd.oci.image.config.v1+json",
            "digest": calculate_digest(config),
            "size": len(config),
        },
        "layers": layer_descriptors,
    }
    return json.dumps(manifest).encode("utf-8"), blobs


def make_image(*layers: bytes) -> Image:
    """Image with the given layer contents, served from memory."""
    raw_manifest, blobs = build_manifest(list(layers) or [b"layer"])
    return Image(raw_manifest, OCI_MANIFEST, MemoryBlobSource(blobs))


class FakeGetterService:
    """Getter service answering from prepared tags and images.

    Attributes:
        tags: Tag to digest mapping served by get_digest
        images: Digest to image mapping served by get_image
        image_failures: Number of get_image calls to fail before succeeding
            (-1 fails forever)
    """

    def __init__(
        self,
        root: str = "registry.example.com/deckhouse",
        tags: Optional[Dict[str, str]] = None,
        images: Optional[Dict[str, Image]] = None,
        image_failures: int = 0,
    ) -> None:
        self.root = root
        self.tags = tags if tags is not None else {}
        self.images = images if images is not None else {}
        self.image_failures = image_failures
        self.children: Dict[str, "FakeGetterService"] = {}
        self.digest_calls: List[str] = []
        self.image_calls: List[str] = []
        self.exists_calls: List[str] = []

    def add_image(self, tag: str, image: Image) -> str:
        self.tags[tag] = image.digest
        self.images[image.digest] = image
        return image.digest

    def get_root(self) -> str:
        return self.root

    def with_segment(self, segment: str) -> "FakeGetterService":
        if segment not in self.children:
            self.children[segment] = FakeGetterService(root=f"{self.root}/{segment}")
        return self.children[segment]

    async def check_image_exists(self, tag: str) -> None:
        self.exists_calls.append(tag)
        if tag not in self.tags:
            raise ImageNotFoundError(f"{self.root}:{tag} not found")

    async def get_digest(self, tag: str) -> str:
        self.digest_calls.append(tag)
        if tag not in self.tags:
            raise ImageNotFoundError(f"{self.root}:{tag} not found")
        return self.tags[tag]

    async def get_image(self, reference: str) -> Image:
        self.image_calls.append(reference)
        if self.image_failures != 0:
            self.image_failures -= 1
            raise ConnectionError("connection reset by peer")

        digest = reference[1:] if reference.startswith("@") else self.tags.get(reference)
        if digest not in self.images:
            raise ImageNotFoundError(f"{self.root}@{digest} not found")
        return self.images[digest]
