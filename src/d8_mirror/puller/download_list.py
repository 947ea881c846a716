"""Sets of image references awaiting digest resolution."""

from typing import Dict, Optional

from ..image.meta import ImageMeta


class ImageDownloadList:
    """Image references of one image group mapped to their resolved metadata.

    A value of None means the reference is recorded but its digest has not
    been resolved yet. Group specific subclasses add ``fill_*`` methods.
    """

    def __init__(self, root_url: str) -> None:
        self.root_url = root_url.rstrip("/")
        self.images: Dict[str, Optional[ImageMeta]] = {}

    def add(self, reference: str) -> None:
        """Record a reference unless it is already present."""
        self.images.setdefault(reference, None)

    def unresolved(self) -> list[str]:
        return [ref for ref, meta in self.images.items() if meta is None]

    def __len__(self) -> int:
        return len(self.images)

    def __contains__(self, reference: object) -> bool:
        return reference in self.images
