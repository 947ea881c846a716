"""Image references and the metadata binding a tag to a digest."""

from dataclasses import dataclass
from typing import Optional

from ..exceptions import InvalidReferenceError
from ..utils.digest import parse_digest


@dataclass(frozen=True)
class ImageReference:
    """Parsed image reference."""

    repository: str
    tag: Optional[str] = None
    digest: Optional[str] = None

    def __str__(self) -> str:
        result = self.repository
        if self.tag:
            result += f":{self.tag}"
        if self.digest:
            result += f"@{self.digest}"
        return result


def parse_image_reference(reference: str) -> ImageReference:
    """Parse an image reference string.

    Supported forms:
        registry/repo:tag
        registry/repo@sha256:<hex>
        registry/repo:tag@sha256:<hex>

    A colon only starts a tag when it comes after the last slash, so registry
    ports are kept in the repository ("localhost:5000/app:v1").

    Args:
        reference: Image reference

    Returns:
        Parsed reference

    Raises:
        InvalidReferenceError: If the reference has no tag and no digest
        DigestError: If the digest part is malformed
    """
    name, at, digest = reference.partition("@")
    if at:
        digest = parse_digest(digest)

    repository, tag = name, None
    colon = name.rfind(":")
    if colon > name.rfind("/"):
        repository, tag = name[:colon], name[colon + 1 :]

    if not repository or (not tag and not digest):
        raise InvalidReferenceError(f"Invalid image reference: {reference!r}")

    return ImageReference(repository=repository, tag=tag or None, digest=digest or None)


def split_image_ref_by_repo_and_tag(reference: str) -> tuple[str, str]:
    """Split an image reference into repository and tag.

    References pinned only by digest return "@<digest>" as the tag.

    Examples:
        >>> split_image_ref_by_repo_and_tag("registry.io/app:v1")
        ('registry.io/app', 'v1')
        >>> split_image_ref_by_repo_and_tag("registry.io/app@sha256:" + "a" * 64)[1][:8]
        '@sha256:'
    """
    parsed = parse_image_reference(reference)
    if parsed.tag:
        return parsed.repository, parsed.tag
    return parsed.repository, f"@{parsed.digest}"


@dataclass(frozen=True)
class ImageMeta:
    """Binding of a tag reference to the content digest it resolved to.

    Attributes:
        tag: Short tag (e.g. "v1.70.0")
        tag_reference: Full reference the image was requested as
        digest: Resolved manifest digest
    """

    tag: str
    tag_reference: str
    digest: str

    def __post_init__(self) -> None:
        object.__setattr__(self, "digest", parse_digest(self.digest))

    @property
    def repository(self) -> str:
        return parse_image_reference(self.tag_reference).repository

    @property
    def digest_reference(self) -> str:
        return f"{self.repository}@{self.digest}"
