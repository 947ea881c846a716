"""Images, their metadata and the on-disk OCI image layout."""

from .image import Descriptor, Image, LayoutBlobSource
from .indexes import (
    ANNOTATION_IMAGE_REFERENCE_NAME,
    ANNOTATION_IMAGE_SHORT_TAG,
    find_descriptor_by_tag,
    sort_index_manifests,
)
from .layout import ImageLayout, extract_extra_image_short_tag
from .meta import (
    ImageMeta,
    ImageReference,
    parse_image_reference,
    split_image_ref_by_repo_and_tag,
)

__all__ = [
    "ANNOTATION_IMAGE_REFERENCE_NAME",
    "ANNOTATION_IMAGE_SHORT_TAG",
    "Descriptor",
    "Image",
    "ImageLayout",
    "ImageMeta",
    "ImageReference",
    "LayoutBlobSource",
    "extract_extra_image_short_tag",
    "find_descriptor_by_tag",
    "parse_image_reference",
    "sort_index_manifests",
    "split_image_ref_by_repo_and_tag",
]
