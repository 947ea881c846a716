"""Tests for image reference parsing and image metadata."""

import pytest

from d8_mirror.exceptions import DigestError, InvalidReferenceError
from d8_mirror.image.layout import extract_extra_image_short_tag
from d8_mirror.image.meta import (
    ImageMeta,
    ImageReference,
    parse_image_reference,
    split_image_ref_by_repo_and_tag,
)

DIGEST = "sha256:" + "a" * 64


def test_parse_image_reference():
    """Test parsing tag, digest and combined references."""
    assert parse_image_reference("registry.io/deckhouse/ee:v1.70.0") == ImageReference(
        "registry.io/deckhouse/ee", tag="v1.70.0"
    )
    assert parse_image_reference(f"registry.io/app@{DIGEST}") == ImageReference(
        "registry.io/app", digest=DIGEST
    )
    assert parse_image_reference(f"registry.io/app:v1@{DIGEST}") == ImageReference(
        "registry.io/app", tag="v1", digest=DIGEST
    )


def test_parse_image_reference_with_port():
    """Test that a registry port is not mistaken for a tag."""
    parsed = parse_image_reference("localhost:5000/app:v1")
    assert parsed.repository == "localhost:5000/app"
    assert parsed.tag == "v1"

    with pytest.raises(InvalidReferenceError):
        parse_image_reference("localhost:5000/app")


def test_parse_image_reference_invalid():
    """Test rejection of references without tag or digest."""
    with pytest.raises(InvalidReferenceError):
        parse_image_reference("registry.io/app")

    with pytest.raises(InvalidReferenceError):
        parse_image_reference(":v1")

    with pytest.raises(DigestError):
        parse_image_reference("registry.io/app@sha256:short")


def test_image_reference_str():
    """Test formatting a reference back to a string."""
    assert str(ImageReference("registry.io/app", tag="v1")) == "registry.io/app:v1"
    assert (
        str(ImageReference("registry.io/app", tag="v1", digest=DIGEST))
        == f"registry.io/app:v1@{DIGEST}"
    )


def test_split_image_ref_by_repo_and_tag():
    """Test splitting references into repository and tag."""
    assert split_image_ref_by_repo_and_tag("registry.io/app:v1") == ("registry.io/app", "v1")
    assert split_image_ref_by_repo_and_tag(f"registry.io/app@{DIGEST}") == (
        "registry.io/app",
        f"@{DIGEST}",
    )


def test_extract_extra_image_short_tag():
    """Test short tags of extra and regular images."""
    assert extract_extra_image_short_tag("registry/repo/extra/foo:bar") == "foo:bar"
    assert extract_extra_image_short_tag("registry/repo:bar") == "bar"
    assert extract_extra_image_short_tag("registry/extra/a/extra/foo:bar") == "foo:bar"


def test_image_meta():
    """Test metadata validation and derived references."""
    meta = ImageMeta(tag="v1", tag_reference="registry.io/app:v1", digest=DIGEST)
    assert meta.repository == "registry.io/app"
    assert meta.digest_reference == f"registry.io/app@{DIGEST}"

    with pytest.raises(DigestError):
        ImageMeta(tag="v1", tag_reference="registry.io/app:v1", digest="sha256:aaa")
