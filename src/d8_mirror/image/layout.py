"""OCI image layout with a tag to metadata side index."""

import logging
import os
import uuid
from dataclasses import replace
from pathlib import Path
from typing import AsyncIterator, Optional, Union

import aiofiles

from ..exceptions import (
    DigestError,
    ImageMetaNotFoundError,
    ImageNotFoundError,
    InvalidReferenceError,
    LayoutError,
)
from ..utils.digest import new_hasher, parse_digest
from .image import Descriptor, Image, LayoutBlobSource, blob_path
from .indexes import (
    ANNOTATION_IMAGE_REFERENCE_NAME,
    ANNOTATION_IMAGE_SHORT_TAG,
    BLOBS_DIR_NAME,
    IMAGE_LAYOUT_VERSION,
    LAYOUT_FILE_NAME,
    empty_index,
    index_descriptors,
    read_index,
    write_index,
    write_json_file,
)
from .meta import ImageMeta, parse_image_reference, split_image_ref_by_repo_and_tag

EXTRA_PREFIX = "/extra/"

logger = logging.getLogger(__name__)


def extract_extra_image_short_tag(image_reference: str) -> str:
    """Short tag stored in the index for an image reference.

    Extra images ("<repo>/extra/<name>:<tag>") keep "<name>:<tag>" so that
    they do not collide with regular images sharing the same index; other
    images use the bare tag.
    """
    extra_index = image_reference.rfind(EXTRA_PREFIX)
    if extra_index != -1:
        return image_reference[extra_index + len(EXTRA_PREFIX) :]

    _, tag = split_image_ref_by_repo_and_tag(image_reference)
    return tag


class ImageLayout:
    """OCI image layout directory plus in-memory metadata per tag.

    Use ``ImageLayout.create`` to start a fresh layout and ``ImageLayout.open``
    to continue working with one written earlier. The metadata of an opened
    layout is rebuilt from the reference name annotations of its index.
    """

    def __init__(
        self, path: Union[str, Path], meta_by_tag: Optional[dict[str, ImageMeta]] = None
    ) -> None:
        self.path = Path(path)
        self.meta_by_tag: dict[str, ImageMeta] = meta_by_tag if meta_by_tag is not None else {}

    @classmethod
    def create(cls, path: Union[str, Path]) -> "ImageLayout":
        """Create an empty image layout, discarding any previous index.

        Raises:
            LayoutError: If the layout files cannot be written
        """
        layout_path = Path(path)
        try:
            (layout_path / BLOBS_DIR_NAME).mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise LayoutError(f"mkdir for blobs: {e}") from e

        write_index(layout_path, empty_index())
        write_json_file(
            layout_path / LAYOUT_FILE_NAME, {"imageLayoutVersion": IMAGE_LAYOUT_VERSION}
        )
        return cls(layout_path)

    @classmethod
    def open(cls, path: Union[str, Path]) -> "ImageLayout":
        """Open an existing image layout.

        Raises:
            LayoutError: If the path is not an image layout
        """
        layout_path = Path(path)
        if not (layout_path / LAYOUT_FILE_NAME).is_file():
            raise LayoutError(f"{layout_path} is not an OCI image layout")

        layout = cls(layout_path)
        for descriptor in layout.descriptors():
            reference = descriptor.annotations.get(ANNOTATION_IMAGE_REFERENCE_NAME)
            if not reference:
                continue
            try:
                _, tag = split_image_ref_by_repo_and_tag(reference)
            except (InvalidReferenceError, DigestError):
                logger.debug("Skipping unparsable reference %s in %s", reference, layout_path)
                continue

            # Digest-only references keep their name on retag, the tag lives in short_tag
            short_tag = descriptor.annotations.get(ANNOTATION_IMAGE_SHORT_TAG, "")
            if tag.startswith("@") and short_tag and ":" not in short_tag:
                tag = short_tag

            layout.meta_by_tag[tag] = ImageMeta(
                tag=tag, tag_reference=reference, digest=descriptor.digest
            )

        return layout

    def descriptors(self) -> list[Descriptor]:
        return index_descriptors(self.path)

    async def add_image(self, image: Image, tag: str) -> None:
        """Write an image into the layout and index it under a tag.

        Args:
            image: Image with metadata attached
            tag: Tag the metadata is recorded under

        Raises:
            LayoutError: If the image has no metadata or cannot be written
            DigestError: If a downloaded blob does not match its digest
        """
        try:
            meta = image.get_metadata()
        except ImageMetaNotFoundError as e:
            raise LayoutError(f"get image tag reference: {e}") from e

        self.meta_by_tag[tag] = meta

        for blob in image.blob_descriptors():
            await self._write_blob(blob.digest, image.iter_blob(blob.digest))
        await self._write_blob(image.digest, _single_chunk(image.raw_manifest))

        self.append_descriptor(
            image.descriptor(
                {
                    ANNOTATION_IMAGE_REFERENCE_NAME: meta.tag_reference,
                    ANNOTATION_IMAGE_SHORT_TAG: extract_extra_image_short_tag(
                        meta.tag_reference
                    ),
                }
            )
        )

    def append_descriptor(self, descriptor: Descriptor) -> None:
        """Append a descriptor to the index unless an identical one is present."""
        index = read_index(self.path)
        item = descriptor.to_dict()
        if item in index["manifests"]:
            return

        index["manifests"].append(item)
        write_index(self.path, index)

    def get_image(self, tag: str) -> Image:
        """Image previously added under a tag.

        Raises:
            ImageMetaNotFoundError: If nothing was added for the tag
            ImageNotFoundError: If the index has no manifest with the recorded digest
        """
        meta = self.get_meta(tag)

        descriptor = next(
            (d for d in self.descriptors() if d.digest == meta.digest), None
        )
        if descriptor is None:
            raise ImageNotFoundError(
                f"Image {meta.digest} for tag {tag!r} not found in {self.path}"
            )

        try:
            raw_manifest = blob_path(self.path, descriptor.digest).read_bytes()
        except FileNotFoundError as e:
            raise LayoutError(
                f"Cannot read image {descriptor.digest} from {self.path}: {e}"
            ) from e

        return Image(raw_manifest, descriptor.media_type, LayoutBlobSource(self.path), meta)

    def tag_image(self, digest: str, tag: str) -> None:
        """Add another tag to a manifest already in the index.

        A new descriptor pointing at the same digest is appended, the
        original one is left in place.

        Raises:
            ImageNotFoundError: If no manifest has the digest
        """
        digest = parse_digest(digest)

        for descriptor in self.descriptors():
            if descriptor.digest != digest:
                continue

            annotations = dict(descriptor.annotations)
            reference = annotations.get(ANNOTATION_IMAGE_REFERENCE_NAME)
            if reference:
                reference = _retag_reference(reference, tag)
                annotations[ANNOTATION_IMAGE_REFERENCE_NAME] = reference
            annotations[ANNOTATION_IMAGE_SHORT_TAG] = tag

            self.append_descriptor(replace(descriptor, annotations=annotations))

            if reference:
                self.meta_by_tag[tag] = ImageMeta(
                    tag=tag, tag_reference=reference, digest=digest
                )
            return

        raise ImageNotFoundError(f"Image {digest} not found in {self.path}")

    def get_meta(self, tag: str) -> ImageMeta:
        """Metadata recorded for a tag.

        Raises:
            ImageMetaNotFoundError: If nothing is known about the tag
        """
        try:
            return self.meta_by_tag[tag]
        except KeyError:
            raise ImageMetaNotFoundError(
                f"No metadata found for tag {tag!r}"
            ) from None

    async def _write_blob(self, digest: str, chunks: AsyncIterator[bytes]) -> None:
        path = blob_path(self.path, digest)
        if path.exists():
            return

        path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = path.with_name(f".{path.name}.{uuid.uuid4().hex}")
        hasher = new_hasher(digest)
        try:
            async with aiofiles.open(tmp_path, "wb") as f:
                async for chunk in chunks:
                    hasher.update(chunk)
                    await f.write(chunk)

            actual = f"{digest.split(':', 1)[0]}:{hasher.hexdigest()}"
            if actual != digest:
                raise DigestError(f"Blob digest mismatch: expected {digest}, got {actual}")

            os.replace(tmp_path, path)
        except OSError as e:
            raise LayoutError(f"Write blob {digest}: {e}") from e
        finally:
            tmp_path.unlink(missing_ok=True)

    def __repr__(self) -> str:
        return f"ImageLayout({str(self.path)!r})"


def _retag_reference(reference: str, tag: str) -> str:
    try:
        parsed = parse_image_reference(reference)
    except (InvalidReferenceError, DigestError):
        return reference

    # References pinned only by digest stay as they are
    if not parsed.tag:
        return reference

    return str(replace(parsed, tag=tag))


async def _single_chunk(data: bytes) -> AsyncIterator[bytes]:
    yield data
