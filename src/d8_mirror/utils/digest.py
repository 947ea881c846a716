"""Content digests as used by OCI descriptors ("<algorithm>:<hex>")."""

import hashlib
import re
from typing import Union

from ..exceptions import DigestError

# Hex lengths of the algorithms accepted in OCI descriptors
SUPPORTED_ALGORITHMS = {"sha256": 64, "sha512": 128}

DIGEST_PATTERN = re.compile(r"^(?P<algorithm>[a-z0-9]+):(?P<hex>[a-f0-9]+)$")


def calculate_digest(data: Union[bytes, bytearray], algorithm: str = "sha256") -> str:
    """Digest of in-memory content, e.g. a raw manifest.

    Raises:
        ValueError: If the data is not bytes or the algorithm is not accepted
    """
    if not isinstance(data, (bytes, bytearray)):
        raise ValueError(f"Cannot digest {type(data).__name__}, expected bytes")
    if algorithm not in SUPPORTED_ALGORITHMS:
        raise ValueError(f"Unsupported digest algorithm: {algorithm}")

    return f"{algorithm}:{hashlib.new(algorithm, data).hexdigest()}"


def validate_digest(digest: str) -> bool:
    """Whether a string is a well formed digest of an accepted algorithm."""
    match = DIGEST_PATTERN.match(digest) if isinstance(digest, str) else None
    if match is None:
        return False

    return SUPPORTED_ALGORITHMS.get(match["algorithm"]) == len(match["hex"])


def parse_digest(digest: str) -> str:
    """Parse and normalize a digest string.

    Args:
        digest: Digest string, e.g. "sha256:abc..."

    Returns:
        The validated digest

    Raises:
        DigestError: If digest format is invalid
    """
    normalized = digest.strip() if isinstance(digest, str) else digest
    if not validate_digest(normalized):
        raise DigestError(f"Invalid digest format: {digest!r}")
    return normalized


def new_hasher(digest: str) -> "hashlib._Hash":
    """Create an incremental hasher for the algorithm of a digest."""
    algorithm, _ = parse_digest(digest).split(":", 1)
    return hashlib.new(algorithm)


def verify_digest(data: Union[bytes, bytearray], expected_digest: str) -> bool:
    """Check content against an expected digest.

    Raises:
        DigestError: If the expected digest is malformed
    """
    algorithm, _ = parse_digest(expected_digest).split(":", 1)
    return calculate_digest(data, algorithm) == expected_digest
