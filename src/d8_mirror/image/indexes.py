"""Reading, writing and post-processing of OCI image layout indexes."""

import json
import os
import tempfile
from pathlib import Path
from typing import Any, Union

from ..exceptions import ImageNotFoundError, LayoutError
from .image import OCI_INDEX, Descriptor

ANNOTATION_IMAGE_REFERENCE_NAME = "org.opencontainers.image.ref.name"
ANNOTATION_IMAGE_SHORT_TAG = "io.deckhouse.image.short_tag"

LAYOUT_FILE_NAME = "oci-layout"
INDEX_FILE_NAME = "index.json"
BLOBS_DIR_NAME = "blobs"
IMAGE_LAYOUT_VERSION = "1.0.0"


def empty_index() -> dict[str, Any]:
    return {"schemaVersion": 2, "mediaType": OCI_INDEX, "manifests": []}


def read_index(layout_path: Union[str, Path]) -> dict[str, Any]:
    """Read index.json of an image layout.

    Raises:
        LayoutError: If the index is missing or malformed
    """
    index_path = Path(layout_path) / INDEX_FILE_NAME
    try:
        index = json.loads(index_path.read_text(encoding="utf-8"))
    except FileNotFoundError as e:
        raise LayoutError(f"Image index not found: {index_path}") from e
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        raise LayoutError(f"Parse image index {index_path}: {e}") from e

    if not isinstance(index, dict):
        raise LayoutError(f"Parse image index {index_path}: not an object")

    if index.get("manifests") is None:
        index["manifests"] = []
    return index


def write_index(layout_path: Union[str, Path], index: dict[str, Any]) -> None:
    """Atomically replace index.json of an image layout."""
    write_json_file(Path(layout_path) / INDEX_FILE_NAME, index)


def write_json_file(path: Path, content: dict[str, Any]) -> None:
    raw = json.dumps(content, indent=2).encode("utf-8")
    fd, tmp_path = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.")
    try:
        with os.fdopen(fd, "wb") as f:
            f.write(raw)
        os.replace(tmp_path, path)
    except OSError as e:
        Path(tmp_path).unlink(missing_ok=True)
        raise LayoutError(f"Write {path}: {e}") from e


def index_descriptors(layout_path: Union[str, Path]) -> list[Descriptor]:
    """Manifest descriptors listed in the layout index, in index order."""
    return [Descriptor.from_dict(item) for item in read_index(layout_path)["manifests"]]


def sort_index_manifests(layout_path: Union[str, Path]) -> None:
    """Sort index descriptors by their reference name annotation.

    Makes index.json deterministic regardless of the order images were
    pulled in.
    """
    index = read_index(layout_path)
    index["manifests"] = sorted(
        index["manifests"],
        key=lambda item: (item.get("annotations") or {}).get(
            ANNOTATION_IMAGE_REFERENCE_NAME, ""
        ),
    )
    for item in index["manifests"]:
        if item.get("annotations"):
            item["annotations"] = dict(sorted(item["annotations"].items()))

    write_index(layout_path, index)


def find_descriptor_by_tag(layout_path: Union[str, Path], tag: str) -> Descriptor:
    """Find the first descriptor whose reference name ends with ":<tag>".

    Raises:
        ImageNotFoundError: If no descriptor carries the tag
    """
    for descriptor in index_descriptors(layout_path):
        reference = descriptor.annotations.get(ANNOTATION_IMAGE_REFERENCE_NAME, "")
        if reference.endswith(":" + tag):
            return descriptor

    raise ImageNotFoundError(f"Image with tag {tag!r} not found in {layout_path}")
