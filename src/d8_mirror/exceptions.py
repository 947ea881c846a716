"""Custom exceptions for the d8-mirror image pulling engine."""


class MirrorError(Exception):
    """Base exception for all mirroring errors."""

    pass


class RegistryError(MirrorError):
    """Base exception for registry communication errors."""

    pass


class RegistryConnectionError(RegistryError):
    """Raised when unable to connect to the registry."""

    pass


class ManifestError(RegistryError):
    """Raised when manifest operations fail."""

    pass


class BlobError(RegistryError):
    """Raised when blob download fails."""

    pass


class ImageNotFoundError(MirrorError):
    """Raised when an image is absent from a registry or an image layout."""

    pass


class ImageMetaNotFoundError(MirrorError):
    """Raised when no metadata is known for a tag."""

    pass


class InvalidReferenceError(MirrorError, ValueError):
    """Raised when an image reference cannot be parsed."""

    pass


class DigestError(MirrorError, ValueError):
    """Raised when a digest is malformed or does not match the content."""

    pass


class LayoutError(MirrorError):
    """Raised when an OCI image layout cannot be read or written."""

    pass


class RetryExhaustedError(MirrorError):
    """Raised when a retried task failed on every attempt."""

    pass


class PullError(MirrorError):
    """Raised when an image set cannot be pulled."""

    pass


class ServiceError(MirrorError):
    """Raised when a mirroring service fails."""

    pass
